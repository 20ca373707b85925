# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Recording -> clipboard pipeline.

encode -> chunk decision -> transcribe (one call, or parallel chunks) ->
merge -> clipboard, strictly in that order. Blocking steps run on the
executor so the calling event loop stays responsive.
"""

import asyncio
from concurrent.futures import Executor
from typing import Callable, Optional

from .audio import CapturedAudio
from .chunker import Chunker
from .config import Config
from .encoder import Encoder
from .errors import TaskFailure, WhisError
from .merger import merge_transcriptions
from .orchestrator import MAX_CONCURRENT_REQUESTS, ProgressFn, TranscribeFn, transcribe_chunks
from .transcriber import Transcriber
from .utils import copy_to_clipboard, log


class Pipeline:
    """Turns captured audio into clipboard text."""

    def __init__(
        self,
        chunker: Chunker,
        transcribe: TranscribeFn,
        max_concurrent: int = MAX_CONCURRENT_REQUESTS,
        executor: Optional[Executor] = None,
        copy: Callable[[str], None] = copy_to_clipboard,
    ):
        self._chunker = chunker
        self._transcribe = transcribe
        self._executor = executor
        self._copy = copy
        self.max_concurrent = max_concurrent

    @classmethod
    def from_config(cls, config: Config, executor: Optional[Executor] = None) -> "Pipeline":
        """Build the production pipeline. Raises ConfigError without an API key."""
        transcriber = Transcriber(
            api_key=config.require_api_key(),
            model=config.transcription.model,
            url=config.transcription.url,
            timeout=config.transcription.timeout,
            language=config.transcription.language,
        )
        chunker = Chunker(
            Encoder(config.encoder.ffmpeg, config.encoder.bitrate),
            threshold_bytes=config.chunking.threshold_bytes,
            chunk_seconds=config.chunking.chunk_duration,
            overlap_seconds=config.chunking.overlap,
        )
        return cls(chunker, transcriber.transcribe, config.transcription.max_concurrent, executor)

    async def run(self, audio: CapturedAudio, progress: Optional[ProgressFn] = None) -> str:
        """Run the full pipeline and return the text that was copied."""
        loop = asyncio.get_running_loop()

        encoded = await loop.run_in_executor(
            self._executor, self._chunker.prepare, audio.samples, audio.sample_rate, audio.channels
        )

        if encoded.chunked:
            log(f"Transcribing {len(encoded.chunks)} chunks (max {self.max_concurrent} at once)...")
            parts = await transcribe_chunks(
                encoded.chunks,
                self._transcribe,
                max_concurrent=self.max_concurrent,
                progress=progress,
                executor=self._executor,
            )
            text = merge_transcriptions(parts)
        else:
            try:
                text = await loop.run_in_executor(self._executor, self._transcribe, encoded.single)
            except WhisError:
                raise
            except Exception as e:
                raise TaskFailure(f"{type(e).__name__}: {e}") from e
            text = text.strip()

        await loop.run_in_executor(self._executor, self._copy, text)
        return text
