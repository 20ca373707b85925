# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Command line interface for whis.

Usage:
    whis                    Record until Enter, transcribe, copy to clipboard
    whis listen [-k KEY]    Run the background service with a global hotkey
    whis stop               Stop the running service
    whis status             Is the service running, and what is it doing
    whis toggle             Start or stop a recording in the running service
    whis config             Show configuration
    whis config --api-key K Save the API key to ~/.whis/config.toml
    whis version            Show version
"""

import asyncio
import os
import sys
from concurrent.futures import ThreadPoolExecutor

from .audio import AudioCapture
from .config import API_KEY_ENV, CONFIG_FILE, Config, get_config, update_config_field
from .encoder import ffmpeg_available
from .errors import ConfigError, EncodeError, WhisError
from .hotkey import to_pynput
from .ipc import IpcClient, Reply, Request, is_service_running
from .pipeline import Pipeline
from .utils import C_BOLD, C_CYAN, C_DIM, C_GREEN, C_RED, C_RESET, C_YELLOW

FFMPEG_HELP = """FFmpeg is not installed or not in PATH.

whis requires FFmpeg for audio compression.
Please install FFmpeg:
  - Ubuntu/Debian: sudo apt install ffmpeg
  - macOS: brew install ffmpeg
  - Or visit: https://ffmpeg.org/download.html"""


def _preflight(config: Config):
    """Check the external tool and the credential before touching the microphone."""
    if not ffmpeg_available(config.encoder.ffmpeg):
        raise EncodeError(FFMPEG_HELP)
    config.require_api_key()


def _mask(key: str) -> str:
    if not key:
        return f"{C_DIM}(not set){C_RESET}"
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:3]}...{key[-4:]}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_record():
    """Record once, transcribe, copy."""
    config = get_config()
    _preflight(config)

    executor = ThreadPoolExecutor(
        max_workers=config.transcription.max_concurrent + 1,
        thread_name_prefix="whis",
    )
    try:
        pipeline = Pipeline.from_config(config, executor)
        with AudioCapture(config.audio.dtype) as capture:
            capture.start()
            print(f"{C_RED}{C_BOLD}●{C_RESET} Recording... {C_DIM}(press Enter to stop){C_RESET}")
            try:
                input()
            except EOFError:
                pass
            audio = capture.stop()

        print(f"{C_DIM}Transcribing {audio.duration:.1f}s of audio...{C_RESET}")

        def progress(done: int, total: int):
            print(f"{C_DIM}  chunk {done}/{total} transcribed{C_RESET}")

        asyncio.run(pipeline.run(audio, progress=progress))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    print(f"{C_GREEN}Copied to clipboard{C_RESET}")


def cmd_listen(args: list):
    """Start the background service."""
    hotkey = None
    i = 0
    while i < len(args):
        if args[i] in ("-k", "--hotkey") and i + 1 < len(args):
            hotkey = args[i + 1]
            i += 2
        else:
            print(f"{C_RED}Invalid argument: {args[i]}{C_RESET}", file=sys.stderr)
            print(f"{C_DIM}Usage: whis listen [-k HOTKEY]{C_RESET}", file=sys.stderr)
            sys.exit(1)

    config = get_config()
    hotkey = hotkey or config.hotkey.key
    try:
        to_pynput(hotkey)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    if is_service_running():
        raise WhisError("whis service is already running.\nUse 'whis stop' to stop the existing service first.")

    _preflight(config)

    from .service import run_service, setup_service_logging
    setup_service_logging()
    run_service(config, hotkey)


def cmd_stop():
    response = IpcClient().send(Request.STOP)
    if response.type is Reply.ERROR:
        raise WhisError(response.message or "Unknown error")
    print(f"{C_GREEN}Service stopped{C_RESET}")


def cmd_status():
    if not is_service_running():
        print(f"Status: {C_DIM}Not running{C_RESET}")
        print(f"{C_DIM}Start with: whis listen{C_RESET}")
        return

    response = IpcClient().send(Request.STATUS)
    if response.type is Reply.ERROR:
        raise WhisError(response.message or "Unknown error")
    if response.type in (Reply.IDLE, Reply.RECORDING, Reply.PROCESSING):
        print(f"Status: {C_GREEN}Running{C_RESET} ({response.type.value})")
    else:
        print(f"Status: {C_GREEN}Running{C_RESET}")


def cmd_toggle():
    response = IpcClient().send(Request.TOGGLE)
    if response.type is Reply.ERROR:
        raise WhisError(response.message or "Unknown error")
    if response.type is Reply.RECORDING:
        print(f"{C_RED}{C_BOLD}●{C_RESET} Recording")
    elif response.type is Reply.PROCESSING:
        print(f"{C_CYAN}Processing{C_RESET}")
    else:
        print(response.type.value)


def cmd_config(args: list):
    """Persist the API key, or show the effective configuration."""
    api_key = None
    show = not args
    i = 0
    while i < len(args):
        if args[i] == "--api-key" and i + 1 < len(args):
            api_key = args[i + 1].strip()
            i += 2
        elif args[i] == "--show":
            show = True
            i += 1
        else:
            print(f"{C_RED}Invalid argument: {args[i]}{C_RESET}", file=sys.stderr)
            print(f"{C_DIM}Usage: whis config [--api-key KEY] [--show]{C_RESET}", file=sys.stderr)
            sys.exit(1)

    if api_key is not None:
        if not api_key:
            raise ConfigError("API key cannot be empty")
        if not update_config_field("api", "key", api_key):
            raise ConfigError(f"Could not write {CONFIG_FILE}")
        print(f"{C_GREEN}API key saved{C_RESET} to {CONFIG_FILE}")

    if show:
        config = get_config()
        source = API_KEY_ENV if os.environ.get(API_KEY_ENV, "").strip() else "config file"
        rows = [
            ("api key", f"{_mask(config.api_key)} {C_DIM}({source}){C_RESET}" if config.api_key else _mask("")),
            ("model", config.transcription.model),
            ("url", config.transcription.url),
            ("language", config.transcription.language),
            ("max concurrent", str(config.transcription.max_concurrent)),
            ("chunking", f">{config.chunking.threshold_mb} MiB, "
                         f"{config.chunking.chunk_duration}s windows, {config.chunking.overlap}s overlap"),
            ("encoder", f"{config.encoder.ffmpeg} @ {config.encoder.bitrate}"),
            ("hotkey", config.hotkey.key),
            ("config", str(CONFIG_FILE)),
        ]
        width = max(len(name) for name, _ in rows)
        for name, value in rows:
            print(f"  {C_DIM}{name + ':':<{width + 1}}{C_RESET} {value}")


def cmd_version():
    """Show version."""
    from whis import __version__
    print(f"whis {__version__}")


def _print_help():
    """Print grouped help listing."""
    groups = [
        ("Record", [
            ("whis",                    "Record until Enter, transcribe, copy to clipboard"),
        ]),
        ("Service", [
            ("whis listen [-k KEY]",    "Run in the background, toggle with a hotkey"),
            ("whis toggle",             "Start or stop a recording in the service"),
            ("whis status",             "Show whether the service is running"),
            ("whis stop",               "Stop the service"),
        ]),
        ("Settings", [
            ("whis config --api-key K", "Save the OpenAI API key"),
            ("whis config --show",      "Show the effective configuration"),
            ("whis version",            "Show version"),
        ]),
    ]
    width = max(len(c) for _, cmds in groups for c, _ in cmds)
    for group_name, cmds in groups:
        print(f"  {C_BOLD}{group_name}{C_RESET}")
        for cmd, desc in cmds:
            print(f"    {C_CYAN}{cmd:<{width}}{C_RESET}  {C_DIM}{desc}{C_RESET}")
        print()


def _dispatch(args: list):
    if not args:
        cmd_record()
        return

    cmd = args[0]
    rest = args[1:]

    if cmd == "listen":
        cmd_listen(rest)
    elif cmd == "stop":
        cmd_stop()
    elif cmd == "status":
        cmd_status()
    elif cmd == "toggle":
        cmd_toggle()
    elif cmd == "config":
        cmd_config(rest)
    elif cmd == "version":
        cmd_version()
    elif cmd in ("-h", "--help", "help"):
        _print_help()
    else:
        print(f"{C_RED}Unknown command: {cmd}{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Run 'whis help' for usage.{C_RESET}", file=sys.stderr)
        sys.exit(1)


def cli_main():
    """Entry point for the whis CLI."""
    try:
        _dispatch(sys.argv[1:])
    except ConfigError as e:
        print(f"{C_RED}Error:{C_RESET} {e}", file=sys.stderr)
        if API_KEY_ENV in str(e):
            print(f"\n{C_DIM}You can also create a .env file with your OpenAI API key:{C_RESET}", file=sys.stderr)
            print(f"  {API_KEY_ENV}=your-api-key-here", file=sys.stderr)
        sys.exit(1)
    except WhisError as e:
        print(f"{C_RED}Error:{C_RESET} {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print(f"\n{C_YELLOW}Cancelled{C_RESET}", file=sys.stderr)
        sys.exit(1)
