"""
Pipeline exception hierarchy.

NotFoundError        - video/channel/transcript absent upstream or in the store
ProviderUnavailable  - network, auth or rate-limit failure from an external service
PayloadTooLarge      - audio exceeds the transcription provider's ceiling
ParseFailure         - malformed language-model output (never leaves the enrichment processor)
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


# ================================
# Not Found
# ================================

class NotFoundError(PipelineError):
    """Requested resource does not exist."""


class VideoNotFoundError(NotFoundError):
    """Video does not exist upstream or is not published in the store."""


class ChannelNotFoundError(NotFoundError):
    """Channel does not exist upstream."""


class NoTranscriptAvailable(NotFoundError):
    """Every acquisition provider failed for a video."""

    def __init__(self, video_id: str, attempts: Optional[list[dict[str, Any]]] = None):
        self.video_id = video_id
        self.attempts = attempts or []
        super().__init__(f"No transcript available for video {video_id}")


# ================================
# External Providers
# ================================

class ProviderUnavailable(PipelineError):
    """External service failed (network, auth, rate limit)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class QuotaExceededError(ProviderUnavailable):
    """Provider quota or rate limit exhausted."""


class ToolchainUnavailable(ProviderUnavailable):
    """Required local binary (ffmpeg/ffprobe) is missing."""


class PayloadTooLarge(PipelineError):
    """Input exceeds a provider's payload ceiling."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Payload of {size_bytes / 1024 / 1024:.1f}MB exceeds "
            f"{limit_bytes / 1024 / 1024:.1f}MB limit"
        )


class ParseFailure(PipelineError):
    """Language-model output could not be parsed."""


# ================================
# Store
# ================================

class InvalidStatusTransition(PipelineError):
    """Status change not allowed by the lifecycle."""

    def __init__(self, entity: str, current: Any, new: Any):
        self.entity = entity
        self.current = current
        self.new = new
        super().__init__(f"{entity} cannot move from {current} to {new}")
