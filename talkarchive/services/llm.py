"""
Language model client.

Wraps an injected AsyncAnthropic client behind one ``complete()`` call
and translates SDK errors into the pipeline's ProviderUnavailable family.
"""

import logging
from typing import Optional

import anthropic
from anthropic import AsyncAnthropic

from talkarchive.core.config import settings
from talkarchive.core.exceptions import ProviderUnavailable, QuotaExceededError

logger = logging.getLogger(__name__)

PROVIDER = "anthropic"


class LLMClient:
    """
    Chat-style completion against Claude.

    Usage:
    ------
    llm = LLMClient(AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY))
    text = await llm.complete(system="You are...", prompt="Summarize...")
    """

    def __init__(
        self,
        client: AsyncAnthropic,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.ANTHROPIC_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE

    @classmethod
    def from_settings(cls) -> "LLMClient":
        if not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required for enrichment")
        return cls(AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY))

    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Returns the text of the first content block.

        Raises:
            QuotaExceededError: Rate limited
            ProviderUnavailable: Any other API or connection error
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature if temperature is None else temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            raise QuotaExceededError(PROVIDER, str(e)) from e
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise ProviderUnavailable(PROVIDER, str(e)) from e

        if not response.content:
            return ""
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()
