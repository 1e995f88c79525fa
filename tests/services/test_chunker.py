"""
Tests for TextChunker.

This test module verifies:
1. Configuration validation
2. Chunk length bounds and sentence-biased cuts
3. Overlap and reconstruction of the normalized text
4. Edge cases (empty text, text shorter than one chunk)
5. Mapping spans onto timed segments
"""

import pytest

from talkarchive.services.processors.chunker import TextChunker, reconstruct, span_time_range
from talkarchive.services.processors.normalizer import TimedSegment


def sample_text(sentences: int = 60) -> str:
    return " ".join(
        f"Sentence number {i} talks about governance and validators in some detail."
        for i in range(sentences)
    )


class TestChunkerConfiguration:
    """Constructor validation."""

    def test_defaults_from_settings(self):
        chunker = TextChunker()
        assert chunker.chunk_size == 1000
        assert chunker.overlap == 100
        assert chunker.lookahead == 50

    def test_overlap_must_be_smaller_than_chunk_size(self):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=100, overlap=100)

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0, overlap=0)

    def test_max_chunk_length(self):
        assert TextChunker(chunk_size=200, overlap=20, lookahead=30).max_chunk_length == 230


class TestChunkSplitting:
    """Splitting behavior."""

    def test_empty_input(self):
        chunker = TextChunker(chunk_size=100, overlap=10)
        assert chunker.split("") == []
        assert chunker.split("   \n ") == []
        assert chunker.split(None) == []

    def test_short_text_is_one_chunk(self):
        chunker = TextChunker(chunk_size=100, overlap=10)
        spans = chunker.split("Short  text.\n")
        assert len(spans) == 1
        assert spans[0].text == "Short text."
        assert (spans[0].start, spans[0].end) == (0, len("Short text."))

    def test_chunks_within_bounds(self):
        chunker = TextChunker(chunk_size=200, overlap=30, lookahead=40)
        spans = chunker.split(sample_text())
        assert len(spans) > 1
        for span in spans:
            assert 0 < len(span) <= chunker.max_chunk_length

    def test_indexes_are_contiguous(self):
        spans = TextChunker(chunk_size=200, overlap=30).split(sample_text())
        assert [span.index for span in spans] == list(range(len(spans)))

    def test_cuts_prefer_sentence_ends(self):
        chunker = TextChunker(chunk_size=200, overlap=30, lookahead=40)
        spans = chunker.split(sample_text())
        for span in spans[:-1]:
            assert span.text.endswith(".")

    def test_last_chunk_reaches_end(self):
        text = sample_text()
        chunker = TextChunker(chunk_size=200, overlap=30)
        spans = chunker.split(text)
        assert spans[-1].end == len(chunker.normalize_text(text))

    def test_consecutive_chunks_overlap(self):
        spans = TextChunker(chunk_size=200, overlap=30).split(sample_text())
        for previous, span in zip(spans, spans[1:]):
            assert span.start < previous.end
            assert span.start > previous.start

    def test_reconstruct_round_trip(self):
        text = sample_text()
        chunker = TextChunker(chunk_size=150, overlap=40, lookahead=20)
        spans = chunker.split(text)
        assert reconstruct(spans) == chunker.normalize_text(text)

    def test_terminates_without_periods(self):
        """No sentence boundaries: plain fixed-size windows."""
        text = "word " * 500
        chunker = TextChunker(chunk_size=100, overlap=99, lookahead=0)
        spans = chunker.split(text)
        assert spans[-1].end == len(chunker.normalize_text(text))
        assert all(len(span) <= 100 for span in spans)


class TestSpanTimeRange:
    """Proportional mapping of character offsets to seconds."""

    def test_without_segments(self):
        span = TextChunker(chunk_size=50, overlap=5).split("Hello there.")[0]
        assert span_time_range(span, 12, None) == (None, None)

    def test_proportional_mapping(self):
        text = "a" * 100
        spans = TextChunker(chunk_size=50, overlap=10, lookahead=0).split(text)
        segments = [TimedSegment("a", 0.0, 50.0), TimedSegment("b", 50.0, 100.0)]
        start, end = span_time_range(spans[0], len(text), segments)
        assert (start, end) == (0.0, 50.0)
        start, end = span_time_range(spans[-1], len(text), segments)
        assert end == 100.0
