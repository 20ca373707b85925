# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Command socket for talking to a running whis service.

Socket: $XDG_RUNTIME_DIR/whis.sock (chmod 600), falling back to the temp dir.
Protocol: one newline-delimited JSON request per connection, answered by one
newline-delimited JSON response, then the connection closes.

    {"type": "stop" | "status" | "toggle"}
    {"type": "ok" | "recording" | "idle" | "processing"}
    {"type": "error", "message": "..."}
"""

import atexit
import json
import os
import socket
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import IpcProtocolError, ServiceNotRunningError
from .utils import log

SOCKET_NAME = "whis.sock"
PID_NAME = "whis.pid"

MAX_MESSAGE_SIZE = 65536
READ_TIMEOUT = 5.0
CLIENT_TIMEOUT = 10.0


def runtime_dir() -> Path:
    """Per-user runtime directory for the socket and PID marker."""
    return Path(os.environ.get("XDG_RUNTIME_DIR") or tempfile.gettempdir())


def get_socket_path() -> Path:
    return runtime_dir() / SOCKET_NAME


def get_pid_path() -> Path:
    return runtime_dir() / PID_NAME


class Request(str, Enum):
    STOP = "stop"
    STATUS = "status"
    TOGGLE = "toggle"


class Reply(str, Enum):
    OK = "ok"
    RECORDING = "recording"
    IDLE = "idle"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass(frozen=True)
class Response:
    type: Reply
    message: Optional[str] = None

    @classmethod
    def error(cls, message: str) -> "Response":
        return cls(Reply.ERROR, message)

    def to_dict(self) -> dict:
        msg = {"type": self.type.value}
        if self.type is Reply.ERROR:
            msg["message"] = self.message or ""
        return msg


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

def encode_message(msg: dict) -> bytes:
    return (json.dumps(msg) + "\n").encode("utf-8")


def decode_message(line: bytes) -> dict:
    """Parse one JSON object line. Raises IpcProtocolError."""
    try:
        msg = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IpcProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(msg, dict) or not isinstance(msg.get("type"), str):
        raise IpcProtocolError("Message must be a JSON object with a string 'type'")
    return msg


def parse_request(line: bytes) -> Request:
    msg = decode_message(line)
    try:
        return Request(msg["type"])
    except ValueError:
        raise IpcProtocolError(f"Unknown request: {msg['type']}") from None


def parse_response(line: bytes) -> Response:
    msg = decode_message(line)
    try:
        reply = Reply(msg["type"])
    except ValueError:
        raise IpcProtocolError(f"Unknown response: {msg['type']}") from None
    if reply is Reply.ERROR:
        return Response.error(str(msg.get("message", "")))
    return Response(reply)


def _read_line(sock: socket.socket) -> bytes:
    """Read up to the first newline. Returns b"" if the peer closed without sending."""
    buf = b""
    while b"\n" not in buf:
        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            raise IpcProtocolError("Timed out waiting for message") from None
        if not chunk:
            break
        buf += chunk
        if len(buf) > MAX_MESSAGE_SIZE:
            raise IpcProtocolError("Message too large")
    return buf.split(b"\n", 1)[0].strip()


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------

class IpcConnection:
    """One accepted client: a single request and a single response."""

    def __init__(self, sock: socket.socket):
        self._sock = sock

    def receive(self) -> Optional[Request]:
        """Read the request. None means the client hung up without one (a probe)."""
        line = _read_line(self._sock)
        if not line:
            return None
        return parse_request(line)

    def send(self, response: Response):
        self._sock.sendall(encode_message(response.to_dict()))

    def close(self):
        try:
            self._sock.close()
        except OSError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class IpcServer:
    """Non-blocking listening socket owned by the service for its whole life."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_socket_path()
        self._server: Optional[socket.socket] = None

    def open(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Clean up stale socket file
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            server.bind(str(self.path))
            os.chmod(self.path, 0o600)
            server.listen(8)
            server.setblocking(False)
        except OSError:
            server.close()
            raise
        self._server = server
        atexit.register(self.close)
        log(f"Command socket listening at {self.path}", "OK")

    def try_accept(self) -> Optional[IpcConnection]:
        """Return a pending connection, or None without waiting."""
        if self._server is None:
            return None
        try:
            client, _ = self._server.accept()
        except (BlockingIOError, InterruptedError):
            return None
        client.settimeout(READ_TIMEOUT)
        return IpcConnection(client)

    def close(self):
        server, self._server = self._server, None
        if server is None:
            return
        try:
            server.close()
        except OSError as e:
            log(f"Socket close warning: {e}", "WARN")
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log(f"Socket cleanup warning: {e}", "WARN")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------

class IpcClient:
    """Sends one request per connection to the running service."""

    def __init__(self, path: Optional[Path] = None, timeout: float = CLIENT_TIMEOUT):
        self.path = Path(path) if path is not None else get_socket_path()
        self.timeout = timeout

    def send(self, request: Request) -> Response:
        if not self.path.exists():
            raise ServiceNotRunningError("whis service is not running.\nStart it with: whis listen")

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            try:
                sock.connect(str(self.path))
            except OSError:
                raise ServiceNotRunningError(
                    "Failed to connect to whis service.\n"
                    "The service may have crashed. Run 'whis status' to clean up stale files,\n"
                    "then start the service again with: whis listen"
                ) from None
            sock.sendall(encode_message({"type": request.value}))
            line = _read_line(sock)
        finally:
            sock.close()

        if not line:
            raise IpcProtocolError("Service closed the connection without a response")
        return parse_response(line)


def is_service_running(path: Optional[Path] = None, pid_path: Optional[Path] = None) -> bool:
    """Probe the socket. An unconnectable socket is stale: remove it and the PID marker."""
    path = Path(path) if path is not None else get_socket_path()
    if not path.exists():
        return False

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(1.0)
    try:
        sock.connect(str(path))
        return True
    except OSError:
        for stale in (path, Path(pid_path) if pid_path is not None else get_pid_path()):
            try:
                stale.unlink()
            except FileNotFoundError:
                pass
        return False
    finally:
        sock.close()


class PidFile:
    """PID marker held for the lifetime of the service."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_pid_path()

    def write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid()))
        atexit.register(self.remove)

    def remove(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self):
        self.write()
        return self

    def __exit__(self, *exc):
        self.remove()
