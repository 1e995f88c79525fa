"""
Audio transcription fallback.

Used when a video has no captions: download the audio track with yt-dlp,
check it fits the provider's payload ceiling, and send it to OpenAI
Whisper with segment-level timestamps.

Requires the ffmpeg/ffprobe binaries (yt-dlp uses them to extract audio).
The scratch directory is removed on every path, success or failure.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from glob import glob
from typing import Any, List, Optional

import openai
import yt_dlp
from openai import AsyncOpenAI

from talkarchive.core.config import settings
from talkarchive.core.exceptions import (
    PayloadTooLarge,
    ProviderUnavailable,
    QuotaExceededError,
    ToolchainUnavailable,
)
from talkarchive.models.content import TranscriptSource
from talkarchive.services.processors.normalizer import TimedSegment
from talkarchive.services.transcript_service import TranscriptResult

logger = logging.getLogger(__name__)

PROVIDER = "whisper"

REQUIRED_BINARIES = ("ffmpeg", "ffprobe")


def check_toolchain() -> None:
    """
    Raises:
        ToolchainUnavailable: If ffmpeg or ffprobe is not on PATH
    """
    missing = [binary for binary in REQUIRED_BINARIES if shutil.which(binary) is None]
    if missing:
        raise ToolchainUnavailable(
            "ffmpeg",
            f"missing {', '.join(missing)} on PATH; install ffmpeg "
            f"(e.g. `apt-get install ffmpeg` or `brew install ffmpeg`) to enable audio transcription",
        )


class WhisperTranscriber:
    """
    Downloads a video's audio and transcribes it with Whisper.

    Example:
        >>> transcriber = WhisperTranscriber(client=AsyncOpenAI(api_key="..."))
        >>> result = await transcriber.transcribe("dQw4w9WgXcQ")
        >>> result.source
        <TranscriptSource.WHISPER_FALLBACK: 'whisper-fallback'>
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_bytes: Optional[int] = None,
        scratch_dir: Optional[str] = None,
    ):
        self._client = client
        self.model = model or settings.WHISPER_MODEL
        self.max_bytes = max_bytes or settings.WHISPER_MAX_AUDIO_BYTES
        self.scratch_dir = scratch_dir or settings.AUDIO_SCRATCH_DIR

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise ProviderUnavailable(PROVIDER, "OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def transcribe(self, video_id: str) -> TranscriptResult:
        """
        Raises:
            ToolchainUnavailable: ffmpeg/ffprobe missing (checked before downloading)
            PayloadTooLarge: Audio exceeds ``max_bytes``; Whisper is not called
            ProviderUnavailable: Download or transcription request failed
        """
        check_toolchain()

        workdir = tempfile.mkdtemp(prefix="talkarchive-audio-", dir=self.scratch_dir)
        try:
            audio_path = await asyncio.to_thread(self._download_audio, video_id, workdir)

            size = os.path.getsize(audio_path)
            logger.info(f"Downloaded audio for {video_id}: {size / 1024 / 1024:.1f}MB")
            if size > self.max_bytes:
                raise PayloadTooLarge(size, self.max_bytes)

            return await self._transcribe_file(video_id, audio_path)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _download_audio(self, video_id: str, workdir: str) -> str:
        ydl_opts = {
            'format': 'bestaudio/best',
            'outtmpl': os.path.join(workdir, '%(id)s.%(ext)s'),
            'postprocessors': [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': 'mp3',
                # Speech survives low bitrates; keeps long talks under the ceiling
                'preferredquality': '64',
            }],
            'quiet': True,
            'no_warnings': True,
            'noprogress': True,
        }

        url = f"https://www.youtube.com/watch?v={video_id}"
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                ydl.download([url])
        except yt_dlp.utils.DownloadError as e:
            raise ProviderUnavailable("yt-dlp", f"audio download failed for {video_id}: {e}") from e

        files = sorted(glob(os.path.join(workdir, '*.mp3')))
        if not files:
            raise ProviderUnavailable("yt-dlp", f"no audio file produced for {video_id}")
        return files[0]

    async def _transcribe_file(self, video_id: str, audio_path: str) -> TranscriptResult:
        try:
            with open(audio_path, "rb") as audio_file:
                response = await self.client.audio.transcriptions.create(
                    model=self.model,
                    file=audio_file,
                    response_format="verbose_json",
                    timestamp_granularities=["segment"],
                )
        except openai.RateLimitError as e:
            raise QuotaExceededError(PROVIDER, str(e)) from e
        except openai.APIError as e:
            raise ProviderUnavailable(PROVIDER, str(e)) from e

        segments = self._to_segments(getattr(response, "segments", None) or [])
        text = (response.text or "").strip()
        if not text:
            raise ProviderUnavailable(PROVIDER, f"empty transcription for {video_id}")

        return TranscriptResult(
            text=text,
            segments=segments,
            source=TranscriptSource.WHISPER_FALLBACK,
            language=getattr(response, "language", None),
            metadata={"model": self.model, "duration": getattr(response, "duration", None)},
        )

    @staticmethod
    def _to_segments(raw_segments: List[Any]) -> List[TimedSegment]:
        return [
            TimedSegment(text=segment.text.strip(), start=float(segment.start), end=float(segment.end))
            for segment in raw_segments
        ]
