"""
Anthropic Claude API client wrapper.

Implements the KeywordSuggester protocol from core.registry.keywords.
"""

from .client import AnthropicConfig, AnthropicKeywordClient

__all__ = ["AnthropicConfig", "AnthropicKeywordClient"]
