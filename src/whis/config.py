# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Configuration management for whis.

Loads settings from ~/.whis/config.toml with sensible defaults.
The API key may also come from OPENAI_API_KEY (environment or a .env file).
"""

import fcntl
import os
import re
import sys
import threading
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigError

CONFIG_DIR = Path.home() / ".whis"
CONFIG_FILE = CONFIG_DIR / "config.toml"

API_KEY_ENV = "OPENAI_API_KEY"

SAMPLE_DTYPES = ("float32", "int16", "int32", "uint8")

# Default configuration
DEFAULT_CONFIG = """# whis configuration
# Edit this file to customize behavior

[api]
# OpenAI API key. OPENAI_API_KEY in the environment (or a .env file) takes precedence.
key = ""

[transcription]
# Transcription endpoint (OpenAI-compatible)
url = "https://api.openai.com/v1/audio/transcriptions"

# Model identifier sent with every request
model = "whisper-1"

# Language code (en, fa, es, fr, de, etc.) or "auto" for detection
language = "auto"

# Request timeout in seconds
timeout = 300

# Maximum number of chunk requests in flight at once
max_concurrent = 3

[audio]
# Sample format requested from the input device: float32, int16, int32, uint8
dtype = "float32"

[chunking]
# Recordings whose encoded size exceeds this many MiB are split into chunks
threshold_mb = 20

# Length of each chunk in seconds
chunk_duration = 300

# Audio shared between neighbouring chunks, in seconds
overlap = 2

[encoder]
# ffmpeg executable used to compress recordings
ffmpeg = "ffmpeg"

# MP3 bitrate
bitrate = "128k"

[hotkey]
# Hotkey that toggles recording in service mode
key = "ctrl+shift+r"
"""


@dataclass
class ApiConfig:
    key: str = ""


@dataclass
class TranscriptionConfig:
    url: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    language: str = "auto"
    timeout: int = 300
    max_concurrent: int = 3


@dataclass
class AudioConfig:
    dtype: str = "float32"


@dataclass
class ChunkingConfig:
    threshold_mb: float = 20
    chunk_duration: int = 300
    overlap: int = 2

    @property
    def threshold_bytes(self) -> int:
        return int(self.threshold_mb * 1024 * 1024)


@dataclass
class EncoderConfig:
    ffmpeg: str = "ffmpeg"
    bitrate: str = "128k"


@dataclass
class HotkeyConfig:
    key: str = "ctrl+shift+r"


@dataclass
class Config:
    api: ApiConfig = field(default_factory=ApiConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    hotkey: HotkeyConfig = field(default_factory=HotkeyConfig)

    @property
    def api_key(self) -> str:
        """Resolve the API key: environment first, then the config file."""
        key = os.environ.get(API_KEY_ENV, "").strip()
        return key or self.api.key.strip()

    def require_api_key(self) -> str:
        key = self.api_key
        if not key:
            raise ConfigError(
                f"No API key configured. Set {API_KEY_ENV} or run: whis config --api-key <key>"
            )
        return key


def load_config() -> Config:
    """Load configuration from file, creating default if missing."""
    load_dotenv()

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    try:
        CONFIG_DIR.chmod(0o700)
    except OSError:
        pass

    # Create default config if it doesn't exist
    if not CONFIG_FILE.exists():
        CONFIG_FILE.write_text(DEFAULT_CONFIG, encoding='utf-8')
        try:
            CONFIG_FILE.chmod(0o600)
        except OSError:
            pass

    # Load and parse config
    data = {}
    try:
        with open(CONFIG_FILE, 'rb') as f:
            data = tomllib.load(f)
    except Exception as e:
        print(f"Config parse error: {e}", file=sys.stderr)

    # Build config object with defaults
    config = Config()

    if 'api' in data:
        config.api = ApiConfig(
            key=data['api'].get('key', config.api.key),
        )

    if 'transcription' in data:
        config.transcription = TranscriptionConfig(
            url=data['transcription'].get('url', config.transcription.url),
            model=data['transcription'].get('model', config.transcription.model),
            language=data['transcription'].get('language', config.transcription.language),
            timeout=data['transcription'].get('timeout', config.transcription.timeout),
            max_concurrent=data['transcription'].get('max_concurrent', config.transcription.max_concurrent),
        )

    if 'audio' in data:
        config.audio = AudioConfig(
            dtype=data['audio'].get('dtype', config.audio.dtype),
        )

    if 'chunking' in data:
        config.chunking = ChunkingConfig(
            threshold_mb=data['chunking'].get('threshold_mb', config.chunking.threshold_mb),
            chunk_duration=data['chunking'].get('chunk_duration', config.chunking.chunk_duration),
            overlap=data['chunking'].get('overlap', config.chunking.overlap),
        )

    if 'encoder' in data:
        config.encoder = EncoderConfig(
            ffmpeg=data['encoder'].get('ffmpeg', config.encoder.ffmpeg),
            bitrate=data['encoder'].get('bitrate', config.encoder.bitrate),
        )

    if 'hotkey' in data:
        config.hotkey = HotkeyConfig(
            key=data['hotkey'].get('key', config.hotkey.key),
        )

    # Validate and sanitize config values
    _validate_config(config)

    return config


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid HTTP/HTTPS URL."""
    try:
        result = urlparse(url)
        return result.scheme in ("http", "https") and bool(result.netloc)
    except (ValueError, AttributeError):
        return False


def _is_int(value) -> bool:
    # TOML booleans are ints to isinstance
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_config(config: Config):
    """Validate and sanitize configuration values."""
    defaults = Config()

    if not isinstance(config.api.key, str):
        print("Config warning: api key must be a string, ignoring it", file=sys.stderr)
        config.api.key = ""

    if not _is_valid_url(config.transcription.url):
        print(f"Config warning: Invalid transcription URL '{config.transcription.url}', using default", file=sys.stderr)
        config.transcription.url = defaults.transcription.url

    if not config.transcription.model:
        print("Config warning: transcription model cannot be empty, using 'whisper-1'", file=sys.stderr)
        config.transcription.model = defaults.transcription.model

    if not _is_int(config.transcription.timeout) or config.transcription.timeout <= 0:
        print("Config warning: timeout must be a positive integer, using 300", file=sys.stderr)
        config.transcription.timeout = defaults.transcription.timeout

    if not _is_int(config.transcription.max_concurrent) or config.transcription.max_concurrent < 1:
        print("Config warning: max_concurrent must be at least 1, using 3", file=sys.stderr)
        config.transcription.max_concurrent = defaults.transcription.max_concurrent

    if config.audio.dtype not in SAMPLE_DTYPES:
        print(f"Config warning: unsupported sample dtype '{config.audio.dtype}', using 'float32'", file=sys.stderr)
        config.audio.dtype = defaults.audio.dtype

    if not _is_number(config.chunking.threshold_mb) or config.chunking.threshold_mb <= 0:
        print("Config warning: threshold_mb must be a positive number, using 20", file=sys.stderr)
        config.chunking.threshold_mb = defaults.chunking.threshold_mb

    if not _is_int(config.chunking.chunk_duration) or config.chunking.chunk_duration <= 0:
        print("Config warning: chunk_duration must be a positive integer, using 300", file=sys.stderr)
        config.chunking.chunk_duration = defaults.chunking.chunk_duration

    # Overlap must leave room for the window to advance
    if (not _is_int(config.chunking.overlap)
            or config.chunking.overlap < 0
            or config.chunking.overlap >= config.chunking.chunk_duration):
        print("Config warning: overlap must be between 0 and chunk_duration, using 2", file=sys.stderr)
        config.chunking.overlap = min(defaults.chunking.overlap, config.chunking.chunk_duration - 1)

    if not re.fullmatch(r"\d+k", str(config.encoder.bitrate)):
        print(f"Config warning: invalid bitrate '{config.encoder.bitrate}', using '128k'", file=sys.stderr)
        config.encoder.bitrate = defaults.encoder.bitrate

    if not config.hotkey.key:
        print("Config warning: hotkey cannot be empty, using 'ctrl+shift+r'", file=sys.stderr)
        config.hotkey.key = defaults.hotkey.key


# Global config instance with thread-safe initialization
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the global configuration instance (thread-safe)."""
    global _config
    if _config is None:
        with _config_lock:
            # Double-check locking pattern for thread safety
            if _config is None:
                _config = load_config()
    return _config


# ---------------------------------------------------------------------------
# TOML section helpers
# ---------------------------------------------------------------------------

def _replace_in_section(content: str, section: str, key: str, new_value: str) -> str:
    """Replace a key's value within a specific TOML section.

    new_value must already be serialized to its TOML string representation.
    If the key doesn't exist in the section, it is appended under the header.
    """
    lines = content.splitlines(keepends=True)
    in_section = False
    section_header_idx = None
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_section = stripped == f"[{section}]"
            if in_section:
                section_header_idx = i
            continue
        if in_section:
            m = re.match(rf'(\s*{key}\s*=\s*)', line)
            if m:
                newline = "\n" if line.endswith("\n") else ""
                lines[i] = m.group(1) + new_value + newline
                return "".join(lines)

    # Key not found in section - append it after the section header
    if section_header_idx is not None:
        lines.insert(section_header_idx + 1, f"{key} = {new_value}\n")
        return "".join(lines)

    # Section not found at all - append a new section at the end of the file
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    lines.append(f"\n[{section}]\n")
    lines.append(f"{key} = {new_value}\n")
    return "".join(lines)


def _serialize_toml_value(value) -> str:
    """Serialize a Python value to its TOML string representation."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    # String: escape backslashes and quotes, wrap in double quotes
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def update_config_field(section: str, key: str, value) -> bool:
    """Update a single config field in-memory AND persist to TOML."""
    config = get_config()
    section_obj = getattr(config, section, None)
    if section_obj is not None and hasattr(section_obj, key):
        setattr(section_obj, key, value)
    try:
        fd = os.open(str(CONFIG_FILE), os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            content = CONFIG_FILE.read_text()
            content = _replace_in_section(content, section, key, _serialize_toml_value(value))
            CONFIG_FILE.write_text(content)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        return True
    except Exception as e:
        print(f"Config write failed: {e}", file=sys.stderr)
        return False
