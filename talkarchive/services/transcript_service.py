"""
YouTube transcript acquisition with an ordered provider fallback.

1. Caption extractor (youtube-transcript-api), trying in order:
   manual captions in preferred languages, auto-generated captions in
   preferred languages, manual captions in any language, auto-generated
   captions in any language
2. Audio transcription (yt-dlp + Whisper), see whisper_service

The first provider that yields text wins. If none does the acquirer raises
NoTranscriptAvailable; callers never get placeholder text.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from talkarchive.core.config import settings
from talkarchive.core.exceptions import (
    NoTranscriptAvailable,
    NotFoundError,
    PayloadTooLarge,
    ProviderUnavailable,
)
from talkarchive.models.content import TranscriptSource
from talkarchive.services.processors.normalizer import TimedSegment

logger = logging.getLogger(__name__)

PROVIDER = "youtube-transcript-api"


@dataclass
class TranscriptResult:
    text: str
    segments: List[TimedSegment]
    source: TranscriptSource
    language: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def segments_as_json(self) -> List[Dict[str, Any]]:
        return [
            {"start": s.start, "end": s.end, "text": s.text}
            for s in self.segments
        ]


class CaptionProvider:
    """
    Fetches timed caption segments for a video.

    A video without captions is a normal outcome and returns None.
    Blocked or otherwise failed requests raise ProviderUnavailable.

    Example:
        >>> captions = CaptionProvider()
        >>> result = await captions.fetch("dQw4w9WgXcQ")
    """

    def __init__(
        self,
        preferred_languages: Optional[List[str]] = None,
        api: Optional[YouTubeTranscriptApi] = None,
    ):
        self.preferred_languages = preferred_languages or settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES
        self._api = api or YouTubeTranscriptApi()

    async def fetch(self, video_id: str) -> Optional[TranscriptResult]:
        try:
            return await asyncio.to_thread(self._fetch_sync, video_id)
        except TranscriptsDisabled:
            logger.info(f"Transcripts are disabled for video {video_id}")
            return None
        except NoTranscriptFound:
            logger.info(f"No captions found for video {video_id}")
            return None
        except VideoUnavailable:
            logger.info(f"Video {video_id} is unavailable to the caption extractor")
            return None
        except CouldNotRetrieveTranscript as e:
            logger.error(f"Caption request failed for {video_id}: {e}")
            raise ProviderUnavailable(PROVIDER, str(e)) from e

    def _fetch_sync(self, video_id: str) -> Optional[TranscriptResult]:
        transcript_list = self._api.list(video_id)
        transcript = self._select_transcript(transcript_list)
        if transcript is None:
            return None

        segments = self._to_segments(transcript.fetch())
        text = self._format_transcript(segments)
        if not text:
            return None

        return TranscriptResult(
            text=text,
            segments=segments,
            source=TranscriptSource.EXTRACTOR,
            language=transcript.language_code,
            metadata={
                "type": "auto" if transcript.is_generated else "manual",
                "language": transcript.language_code,
            },
        )

    def _select_transcript(self, transcript_list: Any) -> Optional[Any]:
        # Strategy 1 and 2: manual, then auto-generated, in preferred languages
        for finder in (
            transcript_list.find_manually_created_transcript,
            transcript_list.find_generated_transcript,
        ):
            for lang in self.preferred_languages:
                try:
                    return finder([lang])
                except NoTranscriptFound:
                    continue

        # Strategy 3 and 4: any manual, then any auto-generated
        available = list(transcript_list)
        for want_generated in (False, True):
            for transcript in available:
                if transcript.is_generated == want_generated:
                    logger.info(
                        f"Using {'auto-generated' if want_generated else 'manual'} transcript "
                        f"in non-preferred language {transcript.language_code}"
                    )
                    return transcript
        return None

    @staticmethod
    def _to_segments(fetched: Any) -> List[TimedSegment]:
        segments = []
        for snippet in fetched:
            start = float(snippet.start)
            segments.append(
                TimedSegment(
                    text=snippet.text,
                    start=start,
                    end=start + float(snippet.duration),
                )
            )
        return segments

    @staticmethod
    def _format_transcript(segments: List[TimedSegment]) -> str:
        """Join all segment texts with spaces."""
        return ' '.join(s.text.strip() for s in segments if s.text and s.text.strip())


class TranscriptAcquirer:
    """
    Obtains transcript text for a video through an ordered provider fallback.

    Example:
        >>> acquirer = TranscriptAcquirer(CaptionProvider(), WhisperTranscriber())
        >>> result = await acquirer.acquire("dQw4w9WgXcQ")
        >>> result.source
        <TranscriptSource.EXTRACTOR: 'extractor'>
    """

    def __init__(self, captions: CaptionProvider, transcriber: Optional[Any] = None):
        """
        Args:
            captions: Caption extractor (step 1)
            transcriber: Audio transcription fallback (step 2); None disables it
        """
        self.captions = captions
        self.transcriber = transcriber

    async def acquire(self, video_id: str) -> TranscriptResult:
        """
        Raises:
            NoTranscriptAvailable: Every provider failed. ``attempts`` lists
                what each step reported, for the ingestion log.
        """
        attempts: List[Dict[str, Any]] = []

        # Step 1: captions
        try:
            result = await self.captions.fetch(video_id)
        except ProviderUnavailable as e:
            attempts.append({"provider": "captions", "outcome": "unavailable", "error": str(e)})
            result = None
        else:
            if result is None:
                attempts.append({"provider": "captions", "outcome": "not_found"})

        if result is not None:
            logger.info(f"Got transcript for {video_id} from captions ({len(result.text)} chars)")
            return result

        # Step 2: audio transcription
        if self.transcriber is None:
            attempts.append({"provider": "whisper", "outcome": "disabled"})
            raise NoTranscriptAvailable(video_id, attempts)

        try:
            result = await self.transcriber.transcribe(video_id)
        except PayloadTooLarge as e:
            # Terminal for this attempt: no truncation, no further fallback
            logger.warning(f"Audio for {video_id} too large to transcribe: {e}")
            attempts.append({"provider": "whisper", "outcome": "payload_too_large", "error": str(e)})
            raise NoTranscriptAvailable(video_id, attempts) from e
        except (ProviderUnavailable, NotFoundError) as e:
            logger.warning(f"Audio transcription failed for {video_id}: {e}")
            attempts.append({"provider": "whisper", "outcome": "failed", "error": str(e)})
            raise NoTranscriptAvailable(video_id, attempts) from e

        logger.info(f"Got transcript for {video_id} from whisper ({len(result.text)} chars)")
        return result
