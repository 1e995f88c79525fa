"""
Transcript Text Normalizer

Turns raw caption text into something readable without calling a model:

1. Decode HTML entities (captions frequently arrive double-encoded,
   e.g. ``&amp;#39;`` for an apostrophe)
2. Remove spoken filler ("um", "uh", "you know", filler "like")
3. Collapse whitespace
4. Re-group sentences into paragraphs

All functions here are pure. ``normalize`` is idempotent:
``normalize(normalize(t)) == normalize(t)`` for any input.
"""

import html
import re
from dataclasses import dataclass
from typing import Optional


DEFAULT_FILLER_WORDS: tuple[str, ...] = ("um", "uh", "er", "ah", "you know")

# "like" is only filler when it runs straight into another clause
FILLER_LIKE_PATTERN = re.compile(
    r"\blike\b[,.]?\s+(?=(?:um|uh|I|we|they|he|she|it|you|so|and|but|the|a|an)\b)",
    re.IGNORECASE,
)

# Captions encode apostrophes/quotes/ampersands, sometimes twice over
_ENTITY_PATTERN = re.compile(r"&(?:#\d+|#x[0-9a-fA-F]+|[a-zA-Z]+);")

_WHITESPACE_PATTERN = re.compile(r"\s+")

# Sentence boundary: whitespace that follows a run of terminators
_SENTENCE_BREAK_PATTERN = re.compile(r"(?<=[.!?])\s+")

@dataclass(frozen=True)
class NormalizeOptions:
    remove_fillers: bool = True
    add_paragraphs: bool = True
    sentences_per_paragraph: int = 4
    filler_words: tuple[str, ...] = DEFAULT_FILLER_WORDS
    remove_filler_like: bool = True


@dataclass(frozen=True)
class TimedSegment:
    text: str
    start: float
    end: float


def decode_entities(text: str) -> str:
    """Decode HTML entities until nothing decodable remains."""
    # Each pass shortens the text, so the loop ends
    while _ENTITY_PATTERN.search(text):
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    # html.unescape maps &nbsp; to U+00A0; treat it as ordinary whitespace
    return text.replace("\u00a0", " ")


def _filler_patterns(options: NormalizeOptions) -> list[re.Pattern]:
    patterns = []
    for word in options.filler_words:
        body = r"\s+".join(re.escape(part) for part in word.split())
        patterns.append(re.compile(rf"\b{body}\b[,.]?\s*", re.IGNORECASE))
    if options.remove_filler_like:
        patterns.append(FILLER_LIKE_PATTERN)
    return patterns


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def remove_fillers(text: str, options: Optional[NormalizeOptions] = None) -> str:
    """Strip filler words using word-boundary matches ("umbrella" survives)."""
    options = options or NormalizeOptions()
    for pattern in _filler_patterns(options):
        text = pattern.sub("", text)
    return text


def split_sentences(text: str) -> list[str]:
    if not text:
        return []
    return [part for part in _SENTENCE_BREAK_PATTERN.split(text) if part]


def add_paragraph_breaks(text: str, sentences_per_paragraph: int = 4) -> str:
    """Group every N sentences into a paragraph separated by a blank line."""
    if sentences_per_paragraph < 1:
        raise ValueError("sentences_per_paragraph must be at least 1")
    sentences = split_sentences(text)
    paragraphs = [
        " ".join(sentences[i:i + sentences_per_paragraph])
        for i in range(0, len(sentences), sentences_per_paragraph)
    ]
    return "\n\n".join(paragraphs)


def normalize(text: Optional[str], options: Optional[NormalizeOptions] = None) -> str:
    """
    Normalize raw transcript text.

    Entity decoding and filler removal are repeated until the text stops
    changing, since removing one token can expose another ("you um know").
    Paragraphing happens last on single-spaced text, which is what makes a
    second pass a no-op.
    """
    if not text:
        return ""
    options = options or NormalizeOptions()

    # Every pass only removes characters or normalizes whitespace, so the
    # text reaches a fixed point
    while True:
        previous = text
        text = collapse_whitespace(decode_entities(text))
        if options.remove_fillers:
            text = collapse_whitespace(remove_fillers(text, options))
        if text == previous:
            break

    if options.add_paragraphs:
        text = add_paragraph_breaks(text, options.sentences_per_paragraph)
    return text


def create_snippet(text: Optional[str], term: str, context: int = 100) -> str:
    """
    Excerpt of ``text`` around the first case-insensitive match of ``term``.

    Falls back to the opening of the text when the term is absent.
    """
    if not text:
        return ""
    text = collapse_whitespace(text)
    index = text.lower().find(term.lower().strip()) if term.strip() else -1

    if index == -1:
        excerpt = text[:context * 2]
        return excerpt + ("..." if len(text) > len(excerpt) else "")

    start = max(0, index - context)
    end = min(len(text), index + len(term.strip()) + context)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return f"{prefix}{text[start:end]}{suffix}"
