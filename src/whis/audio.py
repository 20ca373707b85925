"""
Audio recording functionality for whis.
"""

import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np
import sounddevice as sd

from .errors import DeviceError, EmptyRecordingError
from .utils import log

# Divisor (and offset) that maps each device sample format onto [-1.0, 1.0]
_SAMPLE_SCALES = {
    "float32": (1.0, 0.0),
    "int16": (32768.0, 0.0),
    "int32": (2147483648.0, 0.0),
    "uint8": (128.0, 128.0),
}


def to_float32(block: np.ndarray, dtype: str) -> np.ndarray:
    """Convert one device block (frames x channels) to interleaved normalized float32."""
    try:
        scale, offset = _SAMPLE_SCALES[dtype]
    except KeyError:
        raise DeviceError(f"Unsupported sample format: {dtype}") from None
    samples = block.reshape(-1).astype(np.float32)
    if offset:
        samples -= offset
    if scale != 1.0:
        samples /= scale
    return samples


class SampleBuffer:
    """Thread-shared, growable store of normalized samples.

    The capture callback appends, the controlling thread takes once.
    The raw block list never leaves this class.
    """

    def __init__(self):
        self._blocks = []
        self._count = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def append(self, samples: np.ndarray):
        with self._lock:
            self._blocks.append(samples)
            self._count += len(samples)

    def take(self) -> np.ndarray:
        """Move all samples out, leaving the buffer empty."""
        with self._lock:
            blocks, self._blocks = self._blocks, []
            self._count = 0
        if not blocks:
            return np.array([], dtype=np.float32)
        return np.concatenate(blocks)


@dataclass
class CapturedAudio:
    samples: np.ndarray   # interleaved float32 in [-1.0, 1.0]
    sample_rate: int
    channels: int

    @property
    def duration(self) -> float:
        return len(self.samples) / (self.sample_rate * self.channels)


@dataclass
class CaptureSession:
    sample_rate: int
    channels: int
    buffer: SampleBuffer
    stream: sd.InputStream


class AudioCapture:
    """Microphone recorder on the default input device.

    At most one session is open at a time. The device is released no later
    than stop() (or close()) returns.
    """

    def __init__(self, dtype: str = "float32"):
        self._dtype = dtype
        self._session: Optional[CaptureSession] = None
        self._recording = threading.Event()
        self._state_lock = threading.Lock()

    @property
    def recording(self) -> bool:
        """Whether a capture session is open."""
        return self._recording.is_set()

    def start(self):
        """Open the default input device and begin streaming into a fresh buffer."""
        with self._state_lock:
            if self._session is not None:
                raise DeviceError("Recording already in progress")
            if self._dtype not in _SAMPLE_SCALES:
                raise DeviceError(f"Unsupported sample format: {self._dtype}")

            try:
                info = sd.query_devices(kind="input")
            except (sd.PortAudioError, ValueError) as e:
                raise DeviceError(f"No input device available: {e}") from e

            max_channels = int(info["max_input_channels"])
            if max_channels < 1:
                raise DeviceError(f"Device '{info['name']}' has no input channels")
            sample_rate = int(info["default_samplerate"])
            channels = min(max_channels, 2)

            buffer = SampleBuffer()
            stream = None
            try:
                stream = sd.InputStream(
                    samplerate=sample_rate,
                    channels=channels,
                    dtype=self._dtype,
                    callback=self._make_callback(buffer),
                )
                self._recording.set()
                stream.start()
            except (sd.PortAudioError, ValueError) as e:
                self._recording.clear()
                if stream is not None:
                    stream.close()
                raise DeviceError(f"Failed to open input stream: {e}") from e

            self._session = CaptureSession(sample_rate, channels, buffer, stream)
            log(f"Mic open: {info['name']} ({sample_rate} Hz, {channels} ch, {self._dtype})", "INFO")

    def stop(self) -> CapturedAudio:
        """Release the device and hand over everything captured."""
        session = self._end_session()
        if session is None:
            raise EmptyRecordingError("No active recording")
        samples = session.buffer.take()
        if samples.size == 0:
            raise EmptyRecordingError()
        return CapturedAudio(samples, session.sample_rate, session.channels)

    def close(self):
        """Release the device, discarding anything captured."""
        session = self._end_session()
        if session is not None:
            session.buffer.take()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _end_session(self) -> Optional[CaptureSession]:
        with self._state_lock:
            session, self._session = self._session, None
            self._recording.clear()
        if session is None:
            return None
        try:
            session.stream.stop()
        except sd.PortAudioError as e:
            log(f"Stream stop warning: {e}", "WARN")
        finally:
            try:
                session.stream.close()
            except sd.PortAudioError as e:
                log(f"Stream cleanup warning: {e}", "WARN")
        return session

    def _make_callback(self, buffer: SampleBuffer):
        dtype = self._dtype

        def callback(indata, frames, time_info, status):
            """Audio stream callback: convert and append, nothing else."""
            if not self._recording.is_set():
                return
            buffer.append(to_float32(indata, dtype))

        return callback
