# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
whis background service.

One asyncio loop owns the recording lifecycle. It polls two sources without
blocking on either: hotkey presses arriving on a queue from the listener
thread, and requests on the command socket. Everything slow (device I/O,
encoding, HTTP, clipboard) runs on the executor.

States:
    idle --toggle--> recording --toggle--> processing --(done/failed)--> idle
    a toggle while processing is ignored and answered with "processing".
"""

import asyncio
import os
import queue
import signal
import sys
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Optional

from .audio import AudioCapture
from .config import Config
from .errors import IpcProtocolError
from .hotkey import HotkeyListener
from .ipc import IpcConnection, IpcServer, PidFile, Reply, Request, Response
from .pipeline import Pipeline
from .utils import PREVIEW_TRUNCATE, log, truncate

IDLE_SLEEP = 0.01  # seconds between polls


class ServiceState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"


class StateCell:
    """The one authoritative ServiceState, guarded by a single lock."""

    def __init__(self):
        self._state = ServiceState.IDLE
        self._lock = threading.Lock()

    def get(self) -> ServiceState:
        with self._lock:
            return self._state

    def transition(self, expected: ServiceState, new: ServiceState) -> bool:
        """Move expected -> new. False (and no change) if the state was something else."""
        with self._lock:
            if self._state is not expected:
                return False
            self._state = new
            return True

    def reset(self):
        with self._lock:
            self._state = ServiceState.IDLE


class ServiceController:
    """Merges hotkey and IPC events into one recording/processing lifecycle."""

    def __init__(
        self,
        capture: AudioCapture,
        pipeline: Pipeline,
        hotkey_events: Optional[queue.Queue] = None,
        ipc: Optional[IpcServer] = None,
        executor: Optional[Executor] = None,
    ):
        self._capture = capture
        self._pipeline = pipeline
        self._hotkey_events = hotkey_events
        self._ipc = ipc
        self._executor = executor
        self._state = StateCell()
        self._counter = 0
        self._running = False
        self._processing_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ServiceState:
        return self._state.get()

    @property
    def recording_count(self) -> int:
        return self._counter

    @property
    def busy(self) -> bool:
        """Whether a processing cycle is still in flight."""
        return self._processing_task is not None and not self._processing_task.done()

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    async def run(self):
        """Poll both event sources until a stop is requested."""
        self._running = True
        while self._running:
            await self.poll_once()
            await asyncio.sleep(IDLE_SLEEP)

    def request_stop(self):
        self._running = False

    async def poll_once(self):
        """Handle at most one pending IPC connection and one hotkey press."""
        if self._ipc is not None:
            conn = self._ipc.try_accept()
            if conn is not None:
                await self._serve_connection(conn)

        if self._hotkey_events is not None:
            try:
                self._hotkey_events.get_nowait()
            except queue.Empty:
                pass
            else:
                await self.toggle()

    async def _serve_connection(self, conn: IpcConnection):
        loop = asyncio.get_running_loop()
        with conn:
            try:
                request = await loop.run_in_executor(self._executor, conn.receive)
            except IpcProtocolError as e:
                log(f"Bad request: {e}", "WARN")
                response = Response.error(str(e))
            except OSError as e:
                log(f"Failed to read request: {e}", "WARN")
                return
            else:
                if request is None:
                    return  # liveness probe
                response = await self.handle_request(request)
            try:
                await loop.run_in_executor(self._executor, conn.send, response)
            except OSError as e:
                log(f"Failed to send response: {e}", "WARN")

    async def handle_request(self, request: Request) -> Response:
        if request is Request.STOP:
            log("Stop signal received", "INFO")
            self.request_stop()
            return Response(Reply.OK)
        if request is Request.STATUS:
            return Response(Reply(self.state.value))
        return await self.toggle()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def toggle(self) -> Response:
        state = self.state
        if state is ServiceState.IDLE:
            return await self._start_recording()
        if state is ServiceState.RECORDING:
            return self._begin_processing()
        log(f"#{self._counter} still processing, toggle ignored", "WARN")
        return Response(Reply.PROCESSING)

    async def _start_recording(self) -> Response:
        if not self._state.transition(ServiceState.IDLE, ServiceState.RECORDING):
            return Response(Reply(self.state.value))
        self._counter += 1
        count = self._counter

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self._capture.start)
        except Exception as e:
            self._state.reset()
            log(f"#{count} error: {e}", "ERR")
            return Response.error(str(e))

        log(f"#{count} recording...", "REC")
        return Response(Reply.RECORDING)

    def _begin_processing(self) -> Response:
        if not self._state.transition(ServiceState.RECORDING, ServiceState.PROCESSING):
            return Response(Reply(self.state.value))
        count = self._counter
        log(f"#{count} processing...", "INFO")
        self._processing_task = asyncio.create_task(self._process(count))
        return Response(Reply.PROCESSING)

    async def _process(self, count: int):
        """One processing cycle. Always ends in idle."""
        loop = asyncio.get_running_loop()

        def progress(done: int, total: int):
            log(f"#{count} transcribed chunk {done}/{total}", "INFO")

        try:
            audio = await loop.run_in_executor(self._executor, self._capture.stop)
            log(f"#{count} recorded {audio.duration:.1f}s", "OK")
            text = await self._pipeline.run(audio, progress=progress)
        except Exception as e:
            log(f"#{count} error: {e}", "ERR")
        else:
            log(f"#{count} done, copied: {truncate(text, PREVIEW_TRUNCATE)}", "OK")
        finally:
            self._state.reset()

    async def wait_idle(self):
        """Wait for an in-flight processing cycle to finish."""
        if self._processing_task is not None:
            await asyncio.gather(self._processing_task, return_exceptions=True)

    def shutdown(self) -> bool:
        """Release the device and abandon any in-flight cycle. Returns True if work was dropped."""
        abandoned = self.busy
        if abandoned:
            log(f"#{self._counter} discarding in-flight processing", "WARN")
            self._processing_task.cancel()
        self._capture.close()
        return abandoned


# ---------------------------------------------------------------------------
# Service logging
# ---------------------------------------------------------------------------

LOG_FILE = Path.home() / ".whis" / "service.log"
LOG_MAX_SIZE = 1_000_000  # ~1MB


def setup_service_logging():
    """Redirect stdout/stderr to the service log when not attached to a terminal."""
    if sys.stdout.isatty():
        return
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    if LOG_FILE.exists() and LOG_FILE.stat().st_size > LOG_MAX_SIZE:
        LOG_FILE.write_text("")
    log_fd = open(LOG_FILE, "a", buffering=1, encoding="utf-8")
    sys.stdout = log_fd
    sys.stderr = log_fd


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _serve(controller: ServiceController) -> bool:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, controller.request_stop)
    try:
        await controller.run()
    finally:
        abandoned = controller.shutdown()
    return abandoned


def run_service(config: Config, hotkey: str):
    """Run the service until 'whis stop', SIGINT or SIGTERM.

    The caller has already checked that no other instance is live and that
    ffmpeg and the API key are available.
    """
    executor = ThreadPoolExecutor(
        max_workers=config.transcription.max_concurrent + 2,
        thread_name_prefix="whis",
    )
    pipeline = Pipeline.from_config(config, executor)
    capture = AudioCapture(config.audio.dtype)
    events: queue.Queue = queue.Queue()
    listener = HotkeyListener(hotkey, events)

    abandoned = False
    with PidFile(), IpcServer() as server:
        controller = ServiceController(capture, pipeline, events, server, executor)
        if not listener.start():
            log("Hotkey unavailable, use 'whis toggle' instead", "WARN")
        log(f"whis listening. Press {hotkey} to record, 'whis stop' to quit", "OK")
        try:
            abandoned = asyncio.run(_serve(controller))
        finally:
            listener.stop()
            executor.shutdown(wait=False, cancel_futures=True)
    log("Service stopped", "OK")

    if abandoned:
        # Worker threads may still be blocked on a request; do not wait for them
        sys.stdout.flush()
        os._exit(0)
