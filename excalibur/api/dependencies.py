"""
FastAPI dependency injection.

Dependencies provide instances of the storage engine, clients, and
configuration to route handlers. Routes never build their own
collaborators, so tests can swap any of them through
app.dependency_overrides.

The file client is shared across requests: it holds the HTTP connection
pool (and in mock mode, the in-memory files themselves). It is closed
from the application lifespan.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.registry.keywords import KeywordSuggester, SimpleKeywordSuggester
from ..core.registry.models import User
from ..core.registry.mutations import AssetMutations
from ..core.registry.store import RegistryStore
from ..core.registry.upload import AssetUploadPipeline
from ..infrastructure.anthropic.client import AnthropicConfig, AnthropicKeywordClient
from ..infrastructure.storage.client import (
    GitHubConfig,
    VersionedFileClient,
    create_file_client,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared instances, created on first use
_file_client: Optional[VersionedFileClient] = None
_keyword_suggester: Optional[KeywordSuggester] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_current_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_name: Annotated[Optional[str], Header()] = None,
    x_user_avatar: Annotated[Optional[str], Header()] = None,
) -> User:
    """
    Caller identity forwarded by the front end's session layer.

    The id is trusted as an opaque string; authenticating it is the
    session layer's job, not ours.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )
    return User(id=x_user_id, name=x_user_name or x_user_id, avatar=x_user_avatar or "")


# ---------------------------------------------------------------------------
# Storage Dependencies
# ---------------------------------------------------------------------------

def get_file_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> VersionedFileClient:
    """
    Provide the shared file client (GitHub or in-memory).

    In mock mode the same instance keeps uploaded files alive for the
    whole process.
    """
    global _file_client

    if _file_client is None:
        if settings.storage_mock_mode:
            _file_client = create_file_client(mock_mode=True)
            logger.info("Created shared mock file client")
        else:
            config = GitHubConfig(
                token=settings.github_token,
                owner=settings.github_owner,
                repo=settings.github_repo,
                branch=settings.github_branch,
                api_url=settings.github_api_url,
                raw_url=settings.github_raw_url,
                timeout_seconds=settings.github_timeout_seconds,
            )
            _file_client = create_file_client(config=config)

    return _file_client


async def close_file_client() -> None:
    """Release the shared file client, if one was created."""
    global _file_client

    if _file_client is not None:
        await _file_client.aclose()
        _file_client = None


def get_registry_store(
    settings: Annotated[Settings, Depends(get_settings)],
    file_client: Annotated[VersionedFileClient, Depends(get_file_client)],
) -> RegistryStore:
    return RegistryStore(
        file_client,
        settings.registry_path,
        max_attempts=settings.registry_max_attempts,
        backoff_seconds=settings.registry_retry_backoff_seconds,
    )


def get_upload_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    file_client: Annotated[VersionedFileClient, Depends(get_file_client)],
    registry: Annotated[RegistryStore, Depends(get_registry_store)],
) -> AssetUploadPipeline:
    return AssetUploadPipeline(file_client, registry, settings.artifact_root)


def get_mutations(
    settings: Annotated[Settings, Depends(get_settings)],
    file_client: Annotated[VersionedFileClient, Depends(get_file_client)],
    registry: Annotated[RegistryStore, Depends(get_registry_store)],
) -> AssetMutations:
    return AssetMutations(registry, file_client, settings.artifact_root)


def get_keyword_suggester(
    settings: Annotated[Settings, Depends(get_settings)],
) -> KeywordSuggester:
    """
    Provide the keyword suggester.

    Falls back to the local word splitter when Claude is not configured;
    keyword quality degrades but uploads keep working.
    """
    global _keyword_suggester

    if _keyword_suggester is None:
        if settings.keywords_mock_mode or not settings.anthropic_api_key:
            if not settings.keywords_mock_mode:
                logger.warning("ANTHROPIC_API_KEY not set, using local keyword suggester")
            _keyword_suggester = SimpleKeywordSuggester()
        else:
            _keyword_suggester = AnthropicKeywordClient(
                AnthropicConfig(
                    api_key=settings.anthropic_api_key,
                    model=settings.anthropic_model,
                    max_tokens=settings.anthropic_max_tokens,
                )
            )

    return _keyword_suggester


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedKey = Annotated[str, Depends(verify_api_key)]
CurrentUser = Annotated[User, Depends(get_current_user)]
RegistryStoreDep = Annotated[RegistryStore, Depends(get_registry_store)]
UploadPipelineDep = Annotated[AssetUploadPipeline, Depends(get_upload_pipeline)]
MutationsDep = Annotated[AssetMutations, Depends(get_mutations)]
KeywordSuggesterDep = Annotated[KeywordSuggester, Depends(get_keyword_suggester)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
