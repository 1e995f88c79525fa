"""
Transcript Enrichment

Three language-model steps turn raw transcript text into something people
can read and find:

1. Cleaning: paragraph formatting and light grammar fixes, run piecewise
   for long transcripts
2. Summary: 5-10 bullet points
3. Tagging: 5-10 lowercase topic tags as JSON

Cleaning feeds the other two, which run concurrently. No step can fail the
whole enrichment: a failed step falls back (raw text, empty summary, no
tags) and is reported in ``EnrichmentResult.degraded_steps``.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from talkarchive.core.config import settings
from talkarchive.core.exceptions import ParseFailure, ProviderUnavailable
from talkarchive.core.logging import get_logger
from talkarchive.services.llm import LLMClient
from talkarchive.services.processors.normalizer import collapse_whitespace, split_sentences

logger = get_logger(__name__)

T = TypeVar("T")

MAX_TAGS = 10


# ================================
# Typed Step Results
# ================================

@dataclass(frozen=True)
class StepResult(Generic[T]):
    """
    Outcome of one enrichment step.

    ``ok=False`` is the degraded variant: ``value`` holds the fallback
    and ``error`` says why.
    """

    value: T
    ok: bool = True
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "StepResult[T]":
        return cls(value=value)

    @classmethod
    def degraded(cls, fallback: T, error: str) -> "StepResult[T]":
        return cls(value=fallback, ok=False, error=error)


@dataclass
class EnrichmentResult:
    cleaned_text: str
    summary: str
    tags: List[str]
    degraded_steps: dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_steps)


# ================================
# Prompts
# ================================

CLEANING_SYSTEM_PROMPT = """You clean up raw video transcripts.
- Fix grammar and punctuation and break the text into paragraphs
- Remove verbal filler and false starts
- Keep the speaker's meaning, wording and technical terms intact
- Do not summarize, add commentary, or add headings
Return only the cleaned transcript text."""

SUMMARY_SYSTEM_PROMPT = """You summarize video transcripts.
Write 5 to 10 concise bullet points covering the main topics and conclusions.
Start each bullet with "- ". Return only the bullet list."""

TAGS_SYSTEM_PROMPT = """You tag video transcripts by topic.
Return 5 to 10 short, lowercase topical tags as JSON in exactly this shape:
{"tags": ["tag one", "tag two"]}
Return only the JSON object."""


# ================================
# Pure Helpers
# ================================

def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def split_for_model(text: str, max_chars: int) -> List[str]:
    """
    Split text into pieces of at most ``max_chars``, breaking between sentences.

    A single sentence longer than ``max_chars`` is hard-split.
    """
    if len(text) <= max_chars:
        return [text] if text else []

    pieces: List[str] = []
    current = ""
    for sentence in split_sentences(collapse_whitespace(text)):
        while len(sentence) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(sentence[:max_chars])
            sentence = sentence[max_chars:].lstrip()
        if not sentence:
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) > max_chars:
            pieces.append(current)
            current = sentence
        else:
            current = candidate

    if current:
        pieces.append(current)
    return pieces


def canonical_tag(raw: str) -> str:
    return collapse_whitespace(raw.strip().lstrip("#")).lower()


def parse_tags(output: str) -> StepResult[List[str]]:
    """
    Parse the tagging model's output.

    Accepts ``{"tags": [...]}`` or a bare JSON list, optionally wrapped in a
    Markdown code fence. Anything else yields the degraded-empty result.
    """
    try:
        payload = _extract_json(output)
        if isinstance(payload, dict):
            payload = payload.get("tags")
        if not isinstance(payload, list):
            raise ParseFailure("expected a list of tags")
        if not all(isinstance(item, str) for item in payload):
            raise ParseFailure("tags must be strings")
    except ParseFailure as e:
        return StepResult.degraded([], str(e))

    tags: List[str] = []
    for item in payload:
        tag = canonical_tag(item)
        if tag and tag not in tags:
            tags.append(tag)
    return StepResult.success(tags[:MAX_TAGS])


def _extract_json(output: str):
    text = (output or "").strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()

    # Models sometimes add a sentence before or after the JSON
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        raise ParseFailure("no JSON found in model output")
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end < start:
        raise ParseFailure("unterminated JSON in model output")

    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParseFailure(f"invalid JSON: {e}") from e


# ================================
# Processor
# ================================

class EnrichmentProcessor:
    """
    Cleans, summarizes and tags transcript text.

    Usage:
    ------
    enricher = EnrichmentProcessor(LLMClient.from_settings())
    result = await enricher.enrich(transcript.raw_text)
    """

    def __init__(
        self,
        llm: LLMClient,
        cleaning_chunk_chars: Optional[int] = None,
        summary_max_chars: Optional[int] = None,
        tags_max_chars: Optional[int] = None,
    ):
        self.llm = llm
        self.cleaning_chunk_chars = cleaning_chunk_chars or settings.CLEANING_CHUNK_CHARS
        self.summary_max_chars = summary_max_chars or settings.SUMMARY_MAX_CHARS
        self.tags_max_chars = tags_max_chars or settings.TAGS_MAX_CHARS

    async def enrich(self, raw_text: str) -> EnrichmentResult:
        cleaned = await self.clean(raw_text)
        summary, tags = await asyncio.gather(
            self.summarize(cleaned.value),
            self.extract_tags(cleaned.value),
        )

        degraded = {
            step: result.error
            for step, result in (("cleaning", cleaned), ("summary", summary), ("tags", tags))
            if not result.ok
        }
        if degraded:
            logger.warning("enrichment_degraded", steps=degraded)

        return EnrichmentResult(
            cleaned_text=cleaned.value,
            summary=summary.value,
            tags=tags.value,
            degraded_steps=degraded,
        )

    async def clean(self, text: str) -> StepResult[str]:
        """
        Clean each piece independently. A failed piece keeps its input
        text, so the result is always complete even when degraded.
        """
        pieces = split_for_model(text, self.cleaning_chunk_chars)
        if not pieces:
            return StepResult.success("")

        cleaned: List[str] = []
        errors: List[str] = []
        for index, piece in enumerate(pieces):
            try:
                output = await self.llm.complete(
                    system=CLEANING_SYSTEM_PROMPT,
                    prompt=f"Clean up this transcript section:\n\n{piece}",
                )
            except ProviderUnavailable as e:
                logger.warning("cleaning_piece_failed", piece=index, pieces=len(pieces), error=str(e))
                errors.append(str(e))
                output = ""
            cleaned.append(output or piece)

        joined = "\n\n".join(cleaned)
        if errors:
            return StepResult.degraded(joined, f"{len(errors)}/{len(pieces)} pieces failed: {errors[0]}")
        return StepResult.success(joined)

    async def summarize(self, text: str) -> StepResult[str]:
        if not text.strip():
            return StepResult.success("")
        try:
            summary = await self.llm.complete(
                system=SUMMARY_SYSTEM_PROMPT,
                prompt=f"Summarize this transcript:\n\n{truncate(text, self.summary_max_chars)}",
                max_tokens=1024,
            )
        except ProviderUnavailable as e:
            logger.warning("summary_failed", error=str(e))
            return StepResult.degraded("", str(e))
        return StepResult.success(summary)

    async def extract_tags(self, text: str) -> StepResult[List[str]]:
        if not text.strip():
            return StepResult.success([])
        try:
            output = await self.llm.complete(
                system=TAGS_SYSTEM_PROMPT,
                prompt=f"Tag this transcript:\n\n{truncate(text, self.tags_max_chars)}",
                max_tokens=256,
                temperature=0.0,
            )
        except ProviderUnavailable as e:
            logger.warning("tagging_failed", error=str(e))
            return StepResult.degraded([], str(e))

        result = parse_tags(output)
        if not result.ok:
            logger.warning("tag_parse_failed", error=result.error, output=output[:200])
        return result
