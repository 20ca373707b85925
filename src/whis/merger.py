"""
Stitch chunk transcripts back into one text.

Neighbouring chunks share a couple of seconds of audio, so the end of one
transcript usually repeats at the start of the next. The repeat is found by
comparing whole words, case-insensitively, and dropped from the later chunk.
"""

from typing import List, Sequence

from .orchestrator import ChunkTranscription

MAX_OVERLAP_WORDS = 15


def find_overlap(tail_words: List[str], head_words: List[str], max_words: int = MAX_OVERLAP_WORDS) -> int:
    """Length of the longest k where the last k tail words equal the first k head words."""
    limit = min(max_words, len(tail_words), len(head_words))
    best = 0
    for k in range(1, limit + 1):
        tail = [w.lower() for w in tail_words[-k:]]
        head = [w.lower() for w in head_words[:k]]
        if tail == head:
            best = k
    return best


def remove_overlap(merged: str, text: str) -> str:
    """Return text with any words already at the end of merged removed."""
    head_words = text.split()
    overlap = find_overlap(merged.split(), head_words)
    if overlap == 0:
        return text
    return " ".join(head_words[overlap:])


def merge_transcriptions(transcriptions: Sequence[ChunkTranscription]) -> str:
    """Merge index-ordered chunk transcripts into a single string."""
    if not transcriptions:
        return ""

    merged = transcriptions[0].text.strip()
    for item in transcriptions[1:]:
        text = item.text.strip()
        if item.has_leading_overlap:
            text = remove_overlap(merged, text)
        if not text:
            continue
        if merged and not merged.endswith(" "):
            merged += " "
        merged += text
    return merged
