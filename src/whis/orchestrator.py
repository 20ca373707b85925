# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Parallel transcription of audio chunks.

Every chunk gets its own task up front; each task waits for one of a fixed
number of permits before its request goes out, so at most max_concurrent
requests are in flight. The blocking request itself runs on an executor
thread. Results come back sorted by chunk index. A failure in one chunk
does not stop the others, but any failure fails the whole batch.
"""

import asyncio
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .chunker import AudioChunk
from .errors import TaskFailure, TranscriptionError

MAX_CONCURRENT_REQUESTS = 3

TranscribeFn = Callable[[bytes], str]
ProgressFn = Callable[[int, int], None]


@dataclass(frozen=True)
class ChunkTranscription:
    index: int
    text: str
    has_leading_overlap: bool


async def transcribe_chunks(
    chunks: Sequence[AudioChunk],
    transcribe: TranscribeFn,
    max_concurrent: int = MAX_CONCURRENT_REQUESTS,
    progress: Optional[ProgressFn] = None,
    executor: Optional[Executor] = None,
) -> List[ChunkTranscription]:
    """
    Transcribe all chunks with bounded concurrency.

    Args:
        chunks: Encoded chunks, any order.
        transcribe: Blocking callable turning audio bytes into text.
        max_concurrent: Permits available to chunk requests.
        progress: Called as progress(done, total) once per successful chunk.
        executor: Where blocking requests run (loop default if None).

    Returns:
        One ChunkTranscription per chunk, sorted by index.

    Raises:
        TranscriptionError: If any chunk failed. Lists every failure.
    """
    if not chunks:
        return []
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be at least 1")

    loop = asyncio.get_running_loop()
    permits = asyncio.Semaphore(max_concurrent)
    total = len(chunks)
    done = 0

    async def run_one(chunk: AudioChunk) -> ChunkTranscription:
        nonlocal done
        async with permits:
            text = await loop.run_in_executor(executor, transcribe, chunk.data)
        done += 1
        if progress is not None:
            progress(done, total)
        return ChunkTranscription(chunk.index, text, chunk.has_leading_overlap)

    tasks = [asyncio.create_task(run_one(chunk)) for chunk in chunks]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    transcriptions = []
    failures = []
    for chunk, result in zip(chunks, results):
        if isinstance(result, TranscriptionError):
            failures.append((chunk.index, result))
        elif isinstance(result, BaseException):
            failures.append((chunk.index, TaskFailure(f"{type(result).__name__}: {result}")))
        else:
            transcriptions.append(result)

    if failures:
        details = "\n".join(f"  chunk {index}: {err}" for index, err in sorted(failures, key=lambda f: f[0]))
        raise TranscriptionError(f"{len(failures)} of {total} chunks failed to transcribe:\n{details}")

    transcriptions.sort(key=lambda t: t.index)
    if [t.index for t in transcriptions] != sorted(chunk.index for chunk in chunks):
        raise TranscriptionError("Chunk results do not match the submitted chunks")
    return transcriptions
