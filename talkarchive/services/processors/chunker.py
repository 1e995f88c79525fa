"""
Transcript Chunking Service

Splits transcript text into overlapping character windows for embedding.

Strategy:
---------
- Walk the whitespace-normalized text in windows of ``chunk_size`` chars
- Before cutting, look back (and up to ``lookahead`` chars forward) for the
  last period; if it sits beyond 80% of the window, cut just after it so
  chunks tend to end on sentence boundaries
- Start the next window ``overlap`` chars before the previous cut

Configuration from settings:
- CHUNK_SIZE: 1000 (default)
- CHUNK_OVERLAP: 100 (default)
- CHUNK_LOOKAHEAD: 50 (default)
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from talkarchive.core.config import settings
from talkarchive.services.processors.normalizer import TimedSegment


# A period must sit past this fraction of the window to move the cut
SENTENCE_CUT_MIN_RATIO = 0.8


@dataclass(frozen=True)
class TextSpan:
    """One chunk. ``start``/``end`` are offsets into the normalized text."""

    index: int
    text: str
    start: int
    end: int

    def __len__(self) -> int:
        return len(self.text)


class TextChunker:
    """
    Overlapping fixed-size chunker with sentence-biased cut points.

    Usage:
    ------
    chunker = TextChunker()
    for span in chunker.split(transcript.cleaned_text):
        ...
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
        lookahead: Optional[int] = None,
    ):
        self.chunk_size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE
        self.overlap = overlap if overlap is not None else settings.CHUNK_OVERLAP
        self.lookahead = lookahead if lookahead is not None else settings.CHUNK_LOOKAHEAD

        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.overlap < 0 or self.lookahead < 0:
            raise ValueError("overlap and lookahead must not be negative")
        # overlap >= chunk_size would never advance the cursor
        if self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )

    @property
    def max_chunk_length(self) -> int:
        return self.chunk_size + self.lookahead

    @staticmethod
    def normalize_text(text: Optional[str]) -> str:
        return re.sub(r"\s+", " ", text or "").strip()

    def split(self, text: Optional[str]) -> list[TextSpan]:
        """
        Split text into overlapping spans.

        Returns an empty list for empty or whitespace-only input.
        """
        normalized = self.normalize_text(text)
        if not normalized:
            return []

        length = len(normalized)
        spans: list[TextSpan] = []
        start = 0

        while start < length:
            end = start + self.chunk_size

            if end < length:
                window = normalized[start:end + self.lookahead]
                boundary = window.rfind(".")
                if boundary > self.chunk_size * SENTENCE_CUT_MIN_RATIO:
                    end = start + boundary + 1
            else:
                end = length

            spans.append(
                TextSpan(
                    index=len(spans),
                    text=normalized[start:end],
                    start=start,
                    end=end,
                )
            )

            if end >= length:
                break

            # max() keeps the walk moving even if a cut lands inside the overlap
            start = max(end - self.overlap, start + 1)

        return spans


def reconstruct(spans: Sequence[TextSpan]) -> str:
    """Join spans back into the normalized text, dropping overlapping prefixes."""
    if not spans:
        return ""
    parts = [spans[0].text]
    for previous, span in zip(spans, spans[1:]):
        parts.append(span.text[previous.end - span.start:])
    return "".join(parts)


def span_time_range(
    span: TextSpan,
    text_length: int,
    segments: Optional[Sequence[TimedSegment]],
) -> tuple[Optional[float], Optional[float]]:
    """
    Estimate start/end seconds of a span from timed segments.

    Character offsets are mapped proportionally onto the segment timeline,
    which is accurate enough for "jump to" links.
    """
    if not segments or text_length <= 0:
        return None, None

    timeline_start = segments[0].start
    timeline_end = max(segment.end for segment in segments)
    duration = timeline_end - timeline_start
    if duration <= 0:
        return timeline_start, timeline_end

    start = timeline_start + duration * (span.start / text_length)
    end = timeline_start + duration * (span.end / text_length)
    return round(start, 2), round(end, 2)
