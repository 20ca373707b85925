"""
Unit tests for merger.py.
"""

from whis.merger import find_overlap, merge_transcriptions, remove_overlap
from whis.orchestrator import ChunkTranscription


def _t(index, text, overlap=None):
    return ChunkTranscription(index, text, index > 0 if overlap is None else overlap)


class TestFindOverlap:
    def test_longest_match_wins(self):
        assert find_overlap(["a", "b", "a", "b"], ["a", "b", "a", "b", "c"]) == 4

    def test_case_insensitive(self):
        assert find_overlap(["Brown", "FOX"], ["brown", "fox", "jumps"]) == 2

    def test_no_match(self):
        assert find_overlap(["one", "two"], ["three", "four"]) == 0

    def test_limited_to_max_words(self):
        words = [str(i) for i in range(20)]
        assert find_overlap(words, words, max_words=15) == 0
        assert find_overlap(words[-15:], words[-15:], max_words=15) == 15

    def test_empty_inputs(self):
        assert find_overlap([], ["a"]) == 0
        assert find_overlap(["a"], []) == 0


class TestRemoveOverlap:
    def test_drops_repeated_words(self):
        assert remove_overlap("the quick brown fox", "brown fox jumps over") == "jumps over"

    def test_no_overlap_returns_text_unchanged(self):
        assert remove_overlap("hello there", "general kenobi") == "general kenobi"

    def test_full_overlap_leaves_nothing(self):
        assert remove_overlap("a b c", "b c") == ""


class TestMergeTranscriptions:
    def test_empty(self):
        assert merge_transcriptions([]) == ""

    def test_single(self):
        assert merge_transcriptions([_t(0, "  just one  ")]) == "just one"

    def test_overlap_removed(self):
        parts = [_t(0, "the quick brown fox"), _t(1, "brown fox jumps over")]
        assert merge_transcriptions(parts) == "the quick brown fox jumps over"

    def test_no_overlap_joined_with_one_space(self):
        parts = [_t(0, "first part."), _t(1, "Second part.")]
        assert merge_transcriptions(parts) == "first part. Second part."

    def test_overlap_only_checked_when_flagged(self):
        parts = [_t(0, "yes yes"), _t(1, "yes no", overlap=False)]
        assert merge_transcriptions(parts) == "yes yes yes no"

    def test_fully_overlapping_chunk_adds_nothing(self):
        parts = [_t(0, "a b c"), _t(1, "b c"), _t(2, "c d")]
        assert merge_transcriptions(parts) == "a b c d"

    def test_case_difference_is_still_overlap(self):
        parts = [_t(0, "And Then"), _t(1, "and then we left")]
        assert merge_transcriptions(parts) == "And Then we left"

    def test_blank_chunks_skipped(self):
        parts = [_t(0, "hello"), _t(1, "   "), _t(2, "world")]
        assert merge_transcriptions(parts) == "hello world"
