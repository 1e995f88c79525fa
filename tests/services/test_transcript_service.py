"""
Tests for transcript acquisition.

This test module verifies:
1. Caption track selection order
2. Caption outcomes: missing captions vs. failed requests
3. Acquirer fallback to audio transcription
4. Whisper payload ceiling and scratch cleanup
5. Missing ffmpeg toolchain
"""

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
)

from talkarchive.core.exceptions import (
    NoTranscriptAvailable,
    PayloadTooLarge,
    ProviderUnavailable,
    ToolchainUnavailable,
)
from talkarchive.models import TranscriptSource
from talkarchive.services.processors.normalizer import TimedSegment
from talkarchive.services.transcript_service import (
    CaptionProvider,
    TranscriptAcquirer,
    TranscriptResult,
)
from talkarchive.services.whisper_service import WhisperTranscriber, check_toolchain


def caption_track(language: str, generated: bool, snippets=None) -> MagicMock:
    track = MagicMock()
    track.language_code = language
    track.is_generated = generated
    track.fetch.return_value = snippets or [
        SimpleNamespace(text="Hello and welcome.", start=0.0, duration=2.5),
        SimpleNamespace(text="  ", start=2.5, duration=0.5),
        SimpleNamespace(text="Today we talk governance.", start=3.0, duration=3.0),
    ]
    return track


def transcript_list(manual=None, generated=None, available=()) -> MagicMock:
    """Mimics youtube_transcript_api.TranscriptList."""

    def finder(tracks):
        def find(languages):
            for language in languages:
                if language in (tracks or {}):
                    return tracks[language]
            raise NoTranscriptFound("vid00000001", languages, None)
        return find

    listing = MagicMock()
    listing.find_manually_created_transcript.side_effect = finder(manual)
    listing.find_generated_transcript.side_effect = finder(generated)
    listing.__iter__.return_value = iter(list(available))
    return listing


def caption_provider(listing) -> CaptionProvider:
    api = MagicMock()
    api.list.return_value = listing
    return CaptionProvider(preferred_languages=["en", "en-US"], api=api)


@pytest.mark.asyncio
class TestCaptionProvider:
    """Caption extraction via youtube-transcript-api."""

    async def test_prefers_manual_preferred_language(self):
        manual = caption_track("en", generated=False)
        auto = caption_track("en", generated=True)
        provider = caption_provider(transcript_list(manual={"en": manual}, generated={"en": auto}))

        result = await provider.fetch("vid00000001")

        assert result.source == TranscriptSource.EXTRACTOR
        assert result.metadata["type"] == "manual"
        assert result.text == "Hello and welcome. Today we talk governance."
        auto.fetch.assert_not_called()

    async def test_falls_back_to_generated_preferred_language(self):
        auto = caption_track("en-US", generated=True)
        provider = caption_provider(transcript_list(generated={"en-US": auto}))

        result = await provider.fetch("vid00000001")

        assert result.metadata["type"] == "auto"
        assert result.language == "en-US"

    async def test_any_language_manual_before_generated(self):
        german_auto = caption_track("de", generated=True)
        french_manual = caption_track("fr", generated=False)
        provider = caption_provider(transcript_list(available=[german_auto, french_manual]))

        result = await provider.fetch("vid00000001")

        assert result.language == "fr"

    async def test_segments_carry_timing(self):
        provider = caption_provider(transcript_list(manual={"en": caption_track("en", False)}))

        result = await provider.fetch("vid00000001")

        assert result.segments[0] == TimedSegment("Hello and welcome.", 0.0, 2.5)
        assert result.segments_as_json()[-1] == {"start": 3.0, "end": 6.0, "text": "Today we talk governance."}

    async def test_no_tracks_returns_none(self):
        provider = caption_provider(transcript_list())
        assert await provider.fetch("vid00000001") is None

    async def test_disabled_returns_none(self):
        api = MagicMock()
        api.list.side_effect = TranscriptsDisabled("vid00000001")
        provider = CaptionProvider(preferred_languages=["en"], api=api)

        assert await provider.fetch("vid00000001") is None

    async def test_request_failure_raises_provider_unavailable(self):
        api = MagicMock()
        api.list.side_effect = CouldNotRetrieveTranscript("vid00000001")
        provider = CaptionProvider(preferred_languages=["en"], api=api)

        with pytest.raises(ProviderUnavailable):
            await provider.fetch("vid00000001")


def whisper_result() -> TranscriptResult:
    return TranscriptResult(
        text="Transcribed from audio.",
        segments=[TimedSegment("Transcribed from audio.", 0.0, 3.0)],
        source=TranscriptSource.WHISPER_FALLBACK,
    )


@pytest.mark.asyncio
class TestTranscriptAcquirer:
    """Ordered provider fallback."""

    async def test_captions_win(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(return_value=TranscriptResult("From captions.", [], TranscriptSource.EXTRACTOR))
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock()

        result = await TranscriptAcquirer(captions, transcriber).acquire("vid00000001")

        assert result.source == TranscriptSource.EXTRACTOR
        transcriber.transcribe.assert_not_called()

    async def test_falls_back_to_whisper(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(return_value=None)
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock(return_value=whisper_result())

        result = await TranscriptAcquirer(captions, transcriber).acquire("vid00000001")

        assert result.source == TranscriptSource.WHISPER_FALLBACK
        assert str(result.source) == "whisper-fallback"

    async def test_caption_outage_still_tries_whisper(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(side_effect=ProviderUnavailable("youtube-transcript-api", "blocked"))
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock(return_value=whisper_result())

        result = await TranscriptAcquirer(captions, transcriber).acquire("vid00000001")

        assert result.text == "Transcribed from audio."

    async def test_no_transcriber_raises(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(return_value=None)

        with pytest.raises(NoTranscriptAvailable) as exc_info:
            await TranscriptAcquirer(captions, None).acquire("vid00000001")

        outcomes = [attempt["outcome"] for attempt in exc_info.value.attempts]
        assert outcomes == ["not_found", "disabled"]

    async def test_oversized_audio_is_terminal(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(return_value=None)
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock(side_effect=PayloadTooLarge(30, 24))

        with pytest.raises(NoTranscriptAvailable) as exc_info:
            await TranscriptAcquirer(captions, transcriber).acquire("vid00000001")

        assert exc_info.value.attempts[-1]["outcome"] == "payload_too_large"
        assert transcriber.transcribe.await_count == 1

    async def test_missing_toolchain_becomes_no_transcript(self):
        captions = MagicMock()
        captions.fetch = AsyncMock(return_value=None)
        transcriber = MagicMock()
        transcriber.transcribe = AsyncMock(side_effect=ToolchainUnavailable("ffmpeg", "missing ffmpeg"))

        with pytest.raises(NoTranscriptAvailable) as exc_info:
            await TranscriptAcquirer(captions, transcriber).acquire("vid00000001")

        assert exc_info.value.attempts[-1]["outcome"] == "failed"


@pytest.mark.asyncio
class TestWhisperTranscriber:
    """Audio download size ceiling and cleanup."""

    async def test_oversized_audio_never_reaches_api(self, tmp_path):
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock()
        transcriber = WhisperTranscriber(
            client=client,
            max_bytes=24 * 1024 * 1024,
            scratch_dir=str(tmp_path),
        )
        workdirs = []

        def fake_download(video_id, workdir):
            workdirs.append(workdir)
            path = os.path.join(workdir, f"{video_id}.mp3")
            with open(path, "wb") as audio:
                audio.truncate(30 * 1024 * 1024)
            return path

        with patch("talkarchive.services.whisper_service.check_toolchain"), \
             patch.object(transcriber, "_download_audio", side_effect=fake_download):
            with pytest.raises(PayloadTooLarge) as exc_info:
                await transcriber.transcribe("vid00000001")

        assert exc_info.value.size_bytes == 30 * 1024 * 1024
        client.audio.transcriptions.create.assert_not_called()
        assert not os.path.exists(workdirs[0])

    async def test_transcribes_small_audio(self, tmp_path):
        response = SimpleNamespace(
            text=" Hello from audio. ",
            language="english",
            duration=4.0,
            segments=[SimpleNamespace(text=" Hello from audio. ", start=0.0, end=4.0)],
        )
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value=response)
        transcriber = WhisperTranscriber(client=client, scratch_dir=str(tmp_path))

        def fake_download(video_id, workdir):
            path = os.path.join(workdir, f"{video_id}.mp3")
            with open(path, "wb") as audio:
                audio.write(b"ID3")
            return path

        with patch("talkarchive.services.whisper_service.check_toolchain"), \
             patch.object(transcriber, "_download_audio", side_effect=fake_download):
            result = await transcriber.transcribe("vid00000001")

        assert result.text == "Hello from audio."
        assert result.source == TranscriptSource.WHISPER_FALLBACK
        assert result.segments == [TimedSegment("Hello from audio.", 0.0, 4.0)]
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["response_format"] == "verbose_json"
        assert list(tmp_path.iterdir()) == []

    async def test_missing_toolchain_checked_before_download(self, tmp_path):
        transcriber = WhisperTranscriber(client=MagicMock(), scratch_dir=str(tmp_path))

        with patch("talkarchive.services.whisper_service.shutil.which", return_value=None), \
             patch.object(transcriber, "_download_audio") as download:
            with pytest.raises(ToolchainUnavailable):
                await transcriber.transcribe("vid00000001")

        download.assert_not_called()


class TestCheckToolchain:
    """ffmpeg/ffprobe detection."""

    def test_present(self):
        with patch("talkarchive.services.whisper_service.shutil.which", return_value="/usr/bin/ffmpeg"):
            check_toolchain()

    def test_missing_names_binaries(self):
        with patch("talkarchive.services.whisper_service.shutil.which", return_value=None):
            with pytest.raises(ToolchainUnavailable, match="ffprobe"):
                check_toolchain()
