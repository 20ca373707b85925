# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Error types for whis.

Every failure a recording cycle can hit derives from WhisError so the
service and the CLI can catch one type at their boundary.
"""


class WhisError(Exception):
    """Base class for all whis errors."""


class ConfigError(WhisError):
    """Configuration is missing or unusable (e.g. no API key)."""


class DeviceError(WhisError):
    """No input device, or the device cannot be opened in a supported format."""


class EmptyRecordingError(WhisError):
    """Capture stopped without a single sample."""

    def __init__(self, message: str = "No audio data recorded"):
        super().__init__(message)


class EncodeError(WhisError):
    """The external transcoder failed or produced no output."""


class TranscriptionError(WhisError):
    """The transcription service failed for one or more chunks."""


class TaskFailure(TranscriptionError):
    """A worker task died with an unexpected exception."""


class IpcProtocolError(WhisError):
    """Malformed request or response on the command socket."""


class ServiceNotRunningError(WhisError):
    """No live service could be reached over the command socket."""
