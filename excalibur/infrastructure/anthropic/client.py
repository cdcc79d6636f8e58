"""
Anthropic Claude API client wrapper.

This module provides a thin wrapper around the Anthropic SDK that:
1. Implements our KeywordSuggester protocol
2. Handles API-specific details (message format, JSON extraction)
3. Provides consistent error handling

Callers go through core.registry.keywords.suggest_keywords, which turns
any error raised here into a fallback keyword list.
"""

import json
import logging
from dataclasses import dataclass

import anthropic
from anthropic import APIError, RateLimitError

logger = logging.getLogger(__name__)


class AnthropicClientError(Exception):
    """Raised when API calls fail."""
    pass


class RateLimitExceeded(AnthropicClientError):
    """Raised when we hit rate limits."""
    pass


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic client."""
    api_key: str
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 256

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("API key is required")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be positive")


SYSTEM_PROMPT = (
    "You extract search keywords for a marketplace of Roblox assets "
    "(models, scripts, maps, plugins, UI kits). Given an asset title and "
    "description, reply with only a JSON array of short lowercase strings: "
    "the key terms plus closely related terms a buyer might search for."
)


class AnthropicKeywordClient:
    """
    KeywordSuggester implementation using Claude.

    Knows Anthropic's API format, nothing about the registry.
    """

    def __init__(self, config: AnthropicConfig) -> None:
        self._config = config
        self._client = anthropic.AsyncAnthropic(api_key=config.api_key)

    async def suggest(self, text: str) -> list[str]:
        if not text.strip():
            raise ValueError("Text is required")

        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": text}],
            )
        except RateLimitError as e:
            logger.warning("Rate limit hit", extra={"error": str(e)})
            raise RateLimitExceeded("API rate limit exceeded. Please try again later.")
        except APIError as e:
            logger.error("API error", extra={"error": str(e)})
            raise AnthropicClientError(f"API error: {e.message}")

        return parse_keyword_response(self._extract_text_response(response))

    def _extract_text_response(self, response) -> str:
        """Extract text content from API response."""
        if not response.content:
            return ""

        text_blocks = [
            block.text
            for block in response.content
            if hasattr(block, "text")
        ]

        return "\n".join(text_blocks)


def parse_keyword_response(text: str) -> list[str]:
    """
    Parse a JSON array of strings out of a model reply.

    Models sometimes wrap the array in prose or a code fence, so we parse
    the outermost [...] span.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        raise AnthropicClientError("Response did not contain a JSON array")

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise AnthropicClientError(f"Response was not valid JSON: {e}")

    if not isinstance(parsed, list):
        raise AnthropicClientError("Response was not a JSON array")

    return [str(item) for item in parsed if isinstance(item, (str, int, float))]
