# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
MP3 encoding via an external ffmpeg process.

Samples are staged as a 16-bit WAV file and handed to ffmpeg. Both temporary
files get unique names so encodes can run side by side, and both are removed
whatever the outcome.
"""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path

import numpy as np
import soundfile as sf

from .errors import EncodeError

ENCODE_TIMEOUT = 600


def ffmpeg_available(ffmpeg: str = "ffmpeg") -> bool:
    """Return True if the ffmpeg executable can be found."""
    return shutil.which(ffmpeg) is not None


def _temp_path(label: str, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix=f"whis_{os.getpid()}_{label}_", suffix=suffix)
    os.close(fd)
    return Path(name)


def _remove(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class Encoder:
    """Compress interleaved float samples to MP3 bytes."""

    def __init__(self, ffmpeg: str = "ffmpeg", bitrate: str = "128k"):
        self.ffmpeg = ffmpeg
        self.bitrate = bitrate

    def command(self, wav_path: Path, mp3_path: Path) -> list:
        return [
            self.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(wav_path),
            "-codec:a", "libmp3lame",
            "-b:a", self.bitrate,
            "-y", str(mp3_path),
        ]

    def encode(self, samples: np.ndarray, sample_rate: int, channels: int, label: str = "main") -> bytes:
        """Encode samples and return the compressed bytes. Raises EncodeError."""
        frames = len(samples) // channels
        if frames == 0:
            raise EncodeError("Nothing to encode")
        pcm = np.clip(samples[:frames * channels], -1.0, 1.0).reshape(frames, channels)

        wav_path = _temp_path(label, ".wav")
        mp3_path = _temp_path(label, ".mp3")
        try:
            sf.write(str(wav_path), pcm, sample_rate, subtype="PCM_16", format="WAV")
            try:
                result = subprocess.run(
                    self.command(wav_path, mp3_path),
                    capture_output=True,
                    timeout=ENCODE_TIMEOUT,
                )
            except FileNotFoundError:
                raise EncodeError(
                    f"{self.ffmpeg} not found. Install FFmpeg (e.g. sudo apt install ffmpeg)"
                ) from None
            except subprocess.TimeoutExpired:
                raise EncodeError(f"FFmpeg timed out after {ENCODE_TIMEOUT}s") from None

            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", errors="replace").strip()
                raise EncodeError(f"FFmpeg conversion failed: {stderr}")

            data = mp3_path.read_bytes() if mp3_path.exists() else b""
            if not data:
                raise EncodeError("FFmpeg produced no output")
            return data
        finally:
            _remove(wav_path)
            _remove(mp3_path)
