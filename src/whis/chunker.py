# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Split long recordings into overlapping, independently encoded chunks.

The whole recording is encoded first. If the result fits under the upload
threshold it is sent as one file. Otherwise the encoded artifact is
discarded and the raw samples are re-encoded window by window, each window
starting inside the tail of the previous one so no word is cut in half.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .encoder import Encoder
from .utils import log

CHUNK_THRESHOLD_BYTES = 20 * 1024 * 1024   # 20 MiB
CHUNK_DURATION_SECS = 300                  # 5 minutes
CHUNK_OVERLAP_SECS = 2


@dataclass(frozen=True)
class AudioChunk:
    data: bytes               # encoded audio
    index: int                # 0-based ordering key
    has_leading_overlap: bool


@dataclass(frozen=True)
class EncodedRecording:
    chunks: List[AudioChunk]
    chunked: bool             # False: a single unsplit file in chunks[0]

    @property
    def single(self) -> bytes:
        return self.chunks[0].data


def plan_windows(total_len: int, window_len: int, overlap_len: int) -> List[Tuple[int, int]]:
    """Return [(start, end), ...] sample windows covering [0, total_len).

    Every window after the first starts overlap_len samples before the end
    of the previous one. The last window always ends at total_len.
    """
    if window_len <= 0:
        raise ValueError("window_len must be positive")
    if not 0 <= overlap_len < window_len:
        raise ValueError("overlap_len must be in [0, window_len)")

    windows = []
    start = 0
    while start < total_len:
        end = min(start + window_len, total_len)
        windows.append((start, end))
        if end >= total_len:
            break
        start = max(end - overlap_len, 0)
    return windows


class Chunker:
    """Decide single-file vs. chunked upload and produce the encoded audio."""

    def __init__(
        self,
        encoder: Encoder,
        threshold_bytes: int = CHUNK_THRESHOLD_BYTES,
        chunk_seconds: int = CHUNK_DURATION_SECS,
        overlap_seconds: int = CHUNK_OVERLAP_SECS,
    ):
        self._encoder = encoder
        self.threshold_bytes = threshold_bytes
        self.chunk_seconds = chunk_seconds
        self.overlap_seconds = overlap_seconds

    def prepare(self, samples: np.ndarray, sample_rate: int, channels: int) -> EncodedRecording:
        # TODO: estimate the encoded size from duration x bitrate so long
        # recordings skip the whole-file encode that gets thrown away below.
        data = self._encoder.encode(samples, sample_rate, channels, label="main")
        if len(data) <= self.threshold_bytes:
            return EncodedRecording([AudioChunk(data, 0, False)], chunked=False)

        log(f"Encoded size {len(data) / (1024 * 1024):.1f} MiB over limit, splitting", "INFO")
        del data
        return EncodedRecording(self.split(samples, sample_rate, channels), chunked=True)

    def split(self, samples: np.ndarray, sample_rate: int, channels: int) -> List[AudioChunk]:
        """Encode overlapping windows of the raw samples, in order."""
        samples_per_second = sample_rate * channels
        windows = plan_windows(
            len(samples),
            int(self.chunk_seconds * samples_per_second),
            int(self.overlap_seconds * samples_per_second),
        )
        chunks = []
        for index, (start, end) in enumerate(windows):
            data = self._encoder.encode(samples[start:end], sample_rate, channels, label=f"chunk{index}")
            chunks.append(AudioChunk(data, index, index > 0))
        log(f"Split into {len(chunks)} chunks", "INFO")
        return chunks
