"""
Configuration for the store API.

Everything is read from environment variables (or .env). Storage and
keyword suggestion each have a mock mode for running without GitHub or
Anthropic credentials.
"""

from .settings import Settings, describe_mock_modes, get_settings

__all__ = ["Settings", "describe_mock_modes", "get_settings"]
