"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without external services.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Excalibur Store API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Several keys allow rotation without downtime."
    )

    # GitHub backing store
    github_token: str = Field(
        default="",
        description="GitHub token with contents read/write access to the store repository."
    )
    github_owner: str = Field(
        default="",
        description="Owner (user or organization) of the store repository"
    )
    github_repo: str = Field(
        default="excaliburstore",
        description="Name of the store repository"
    )
    github_branch: str = Field(
        default="main",
        description="Branch all reads and writes target"
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL (change for GitHub Enterprise)"
    )
    github_raw_url: str = Field(
        default="https://raw.githubusercontent.com",
        description="Base URL used to build public artifact URLs"
    )
    github_timeout_seconds: float = Field(
        default=15.0,
        description="Per-request timeout for GitHub calls"
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory storage instead of GitHub. Enables local dev without a repository."
    )

    # Registry layout and concurrency
    registry_path: str = Field(
        default="Marketplace/registry.json",
        description="Path of the registry document in the repository"
    )
    artifact_root: str = Field(
        default="Marketplace/Assets",
        description="Folder holding one sub-folder of artifacts per asset"
    )
    asset_id_prefix: str = Field(
        default="EXC",
        description="Prefix for generated asset ids"
    )
    registry_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Write attempts per registry update before giving up on conflicts"
    )
    registry_retry_backoff_seconds: float = Field(
        default=0.2,
        ge=0,
        description="Base delay between conflicting attempts; doubles each retry"
    )

    # Anthropic Configuration
    anthropic_api_key: str = Field(
        default="",
        description="Claude API key for keyword suggestions. Required unless in mock mode."
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used for keyword suggestions"
    )
    anthropic_max_tokens: int = Field(
        default=256,
        description="Max tokens for keyword responses. A short JSON array is plenty."
    )
    keywords_mock_mode: bool = Field(
        default=False,
        description="Derive keywords locally instead of calling Claude."
    )

    # Application Behavior
    max_upload_size_mb: int = Field(
        default=50,
        description="Maximum combined artifact size per upload in MB."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.storage_mock_mode:
            if not self.github_token:
                missing.append("GITHUB_TOKEN")
            if not self.github_owner:
                missing.append("GITHUB_OWNER")
            if not self.github_repo:
                missing.append("GITHUB_REPO")

        if not self.keywords_mock_mode and not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()


def describe_mock_modes(settings: Optional[Settings] = None) -> dict[str, bool]:
    """Which external services are replaced by local stand-ins."""
    settings = settings or get_settings()
    return {
        "storage": settings.storage_mock_mode,
        "keywords": settings.keywords_mock_mode,
    }
