# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for orchestrator.py.

Fake transcribe callables run on a real thread pool and record how many
requests were in flight at once.
"""

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from whis.chunker import AudioChunk
from whis.errors import TaskFailure, TranscriptionError
from whis.orchestrator import transcribe_chunks


def _chunks(n):
    return [AudioChunk(f"chunk-{i}".encode(), i, i > 0) for i in range(n)]


class _InstrumentedTranscribe:
    """Blocks briefly per call and tracks peak concurrency."""

    def __init__(self, delays=None, fail=()):
        self.delays = delays or {}
        self.fail = set(fail)
        self.active = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, data: bytes) -> str:
        index = int(data.decode().split("-")[1])
        with self._lock:
            self.active += 1
            self.calls += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delays.get(index, 0.02))
            if index in self.fail:
                raise TranscriptionError(f"OpenAI API error (500): boom {index}")
            return f"text {index}"
        finally:
            with self._lock:
                self.active -= 1


def _run(chunks, transcribe, **kwargs):
    with ThreadPoolExecutor(max_workers=8) as pool:
        return asyncio.run(transcribe_chunks(chunks, transcribe, executor=pool, **kwargs))


class TestTranscribeChunks:
    def test_empty_input(self):
        assert _run([], _InstrumentedTranscribe()) == []

    def test_results_sorted_by_index(self):
        # Later chunks finish first
        fake = _InstrumentedTranscribe(delays={0: 0.15, 1: 0.1, 2: 0.01})
        results = _run(_chunks(3), fake)
        assert [r.index for r in results] == [0, 1, 2]
        assert [r.text for r in results] == ["text 0", "text 1", "text 2"]
        assert [r.has_leading_overlap for r in results] == [False, True, True]

    def test_at_most_three_in_flight(self):
        fake = _InstrumentedTranscribe(delays={i: 0.05 for i in range(10)})
        _run(_chunks(10), fake)
        assert fake.calls == 10
        assert fake.peak <= 3

    def test_custom_concurrency_limit(self):
        fake = _InstrumentedTranscribe(delays={i: 0.05 for i in range(6)})
        _run(_chunks(6), fake, max_concurrent=1)
        assert fake.peak == 1

    def test_input_order_does_not_matter(self):
        chunks = list(reversed(_chunks(4)))
        results = _run(chunks, _InstrumentedTranscribe())
        assert [r.index for r in results] == [0, 1, 2, 3]

    def test_progress_called_once_per_success(self):
        seen = []
        _run(_chunks(5), _InstrumentedTranscribe(), progress=lambda done, total: seen.append((done, total)))
        assert seen == [(1, 5), (2, 5), (3, 5), (4, 5), (5, 5)]

    def test_failure_fails_the_batch(self):
        fake = _InstrumentedTranscribe(fail={1})
        with pytest.raises(TranscriptionError) as exc:
            _run(_chunks(4), fake)
        assert "1 of 4 chunks failed" in str(exc.value)
        assert "chunk 1: OpenAI API error (500): boom 1" in str(exc.value)
        # Siblings are not cancelled
        assert fake.calls == 4

    def test_all_failures_listed(self):
        with pytest.raises(TranscriptionError) as exc:
            _run(_chunks(3), _InstrumentedTranscribe(fail={0, 2}))
        message = str(exc.value)
        assert "2 of 3 chunks failed" in message
        assert "chunk 0:" in message
        assert "chunk 2:" in message

    def test_unexpected_exception_becomes_task_failure(self):
        def explode(data):
            raise RuntimeError("worker died")

        with pytest.raises(TranscriptionError) as exc:
            _run(_chunks(1), explode)
        assert not isinstance(exc.value, TaskFailure)
        assert "RuntimeError: worker died" in str(exc.value)

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            _run(_chunks(2), _InstrumentedTranscribe(), max_concurrent=0)
