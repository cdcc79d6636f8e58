"""
Search keyword suggestion at asset creation time.

Keywords come from an external suggester (an LLM in production). Its
failure must never block an upload, so `suggest_keywords` always
returns a usable list, falling back to the lowercased input text.
"""

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 12


class KeywordSuggester(Protocol):
    """Anything that can turn a title/description into search terms."""

    async def suggest(self, text: str) -> list[str]:
        ...


class SimpleKeywordSuggester:
    """Offline suggester: the lowercased words of the text."""

    async def suggest(self, text: str) -> list[str]:
        return re.findall(r"[\w']+", text.lower())


def normalize_keywords(keywords: list[str], limit: int = MAX_KEYWORDS) -> list[str]:
    """Strip, lowercase and de-duplicate, keeping first-seen order."""
    result: list[str] = []
    for keyword in keywords:
        cleaned = keyword.strip().lower()
        if cleaned and cleaned not in result:
            result.append(cleaned)
        if len(result) >= limit:
            break
    return result


async def suggest_keywords(suggester: KeywordSuggester, text: str) -> list[str]:
    """
    Ask `suggester` for keywords; never raises.

    Falls back to `[text.lower()]` when the suggester fails or returns
    nothing usable, and to `[]` for blank text.
    """
    text = text.strip()
    if not text:
        return []

    fallback = [text.lower()]
    try:
        suggested = await suggester.suggest(text)
    except Exception as e:
        logger.warning("Keyword suggestion failed, using fallback", extra={"error": str(e)})
        return fallback

    if not isinstance(suggested, list) or not all(isinstance(k, str) for k in suggested):
        logger.warning("Keyword suggester returned an invalid result, using fallback")
        return fallback

    return normalize_keywords(suggested) or fallback
