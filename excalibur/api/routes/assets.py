"""
Asset API endpoints.

A thin HTTP surface over the registry engine: listing and search,
upload, engagement (likes, downloads, reports, comments) and removal.
All persistence goes through RegistryStore, AssetUploadPipeline and
AssetMutations; this module only translates HTTP to calls and engine
errors to status codes:

- NotFoundError -> 404
- ConflictError -> 409 (the registry stayed busy past the retry budget)
- PartialUploadError, ReadError, WriteError -> 502 (backing store failed)
- ValueError -> 422
"""

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from ...core.registry.errors import (
    ConflictError,
    NotFoundError,
    PartialUploadError,
    StorageError,
)
from ...core.registry.keywords import suggest_keywords
from ...core.registry.models import Asset, Category, FileType, new_asset
from ...core.registry.upload import ArtifactFile, ArtifactSet
from ..dependencies import (
    AuthenticatedKey,
    CurrentUser,
    KeywordSuggesterDep,
    MutationsDep,
    RegistryStoreDep,
    SettingsDep,
    UploadPipelineDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CommentItem(BaseModel):
    """Single comment on an asset."""
    id: str
    user_id: str
    user_name: str
    user_avatar: str
    text: str
    timestamp: int = Field(description="Milliseconds since the epoch")


class AssetResponse(BaseModel):
    """A registry record as returned to clients."""
    id: str
    user_id: str
    author_name: str
    author_avatar: str
    title: str
    description: str
    category: str
    file_type: str
    credits: str
    thumbnail_url: str
    video_url: str
    file_url: str
    likes: list[str]
    like_count: int
    download_count: int
    reports: int
    timestamp: int = Field(description="Creation time, milliseconds since the epoch")
    keywords: list[str]
    comments: list[CommentItem]

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetResponse":
        return cls(
            id=asset.id,
            user_id=asset.user_id,
            author_name=asset.author_name,
            author_avatar=asset.author_avatar,
            title=asset.title,
            description=asset.description,
            category=asset.category.value,
            file_type=asset.file_type.value,
            credits=asset.credits,
            thumbnail_url=asset.thumbnail_url,
            video_url=asset.video_url,
            file_url=asset.file_url,
            likes=list(asset.likes),
            like_count=asset.like_count,
            download_count=asset.download_count,
            reports=asset.reports,
            timestamp=asset.timestamp,
            keywords=list(asset.keywords),
            comments=[
                CommentItem(
                    id=c.id,
                    user_id=c.user_id,
                    user_name=c.user_name,
                    user_avatar=c.user_avatar,
                    text=c.text,
                    timestamp=c.timestamp,
                )
                for c in asset.comments
            ],
        )


class AssetListResponse(BaseModel):
    """Search results, newest first."""
    count: int
    assets: list[AssetResponse]


class CommentRequest(BaseModel):
    """Request to comment on an asset."""
    text: str = Field(
        description="Comment text",
        min_length=1,
        max_length=2000,
    )


class RemoveResponse(BaseModel):
    """Result of removing an asset."""
    asset_id: str
    artifacts_deleted: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def matches_query(asset: Asset, query: str) -> bool:
    """Case-insensitive substring match over title, description, keywords and id."""
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [asset.title, asset.description, asset.id, *asset.keywords]
    return any(needle in field.lower() for field in haystack)


def raise_for_storage_error(e: Exception) -> NoReturn:
    """Translate engine errors to HTTP errors."""
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The registry is busy. Please try again.",
        )
    if isinstance(e, PartialUploadError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Upload failed at step '{e.step}'. It is safe to retry.",
        )
    if isinstance(e, StorageError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Storage backend error. Please try again later.",
        )
    if isinstance(e, ValueError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    raise e


async def _read_upload(upload: UploadFile, slot: str) -> ArtifactFile:
    data = await upload.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{slot} file is empty",
        )
    return ArtifactFile(filename=upload.filename or slot, data=data)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=AssetListResponse,
    summary="List assets",
    description="All assets, newest first, optionally filtered by a search query",
)
async def list_assets(
    registry: RegistryStoreDep,
    api_key: AuthenticatedKey,
    q: Optional[str] = None,
    category: Optional[str] = None,
) -> AssetListResponse:
    try:
        assets = await registry.get_all()
    except StorageError as e:
        raise_for_storage_error(e)

    if q:
        assets = [a for a in assets if matches_query(a, q)]
    if category:
        assets = [a for a in assets if a.category.value.lower() == category.lower()]

    assets.sort(key=lambda a: a.timestamp, reverse=True)

    return AssetListResponse(
        count=len(assets),
        assets=[AssetResponse.from_asset(a) for a in assets],
    )


@router.get(
    "/{asset_id}",
    response_model=AssetResponse,
    summary="Get one asset",
)
async def get_asset(
    asset_id: str,
    registry: RegistryStoreDep,
    api_key: AuthenticatedKey,
) -> AssetResponse:
    try:
        asset = await registry.get(asset_id)
    except StorageError as e:
        raise_for_storage_error(e)
    return AssetResponse.from_asset(asset)


@router.post(
    "",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a new asset",
    description="Stores the primary file, thumbnail and preview video, then publishes the record",
)
async def upload_asset(
    user: CurrentUser,
    api_key: AuthenticatedKey,
    settings: SettingsDep,
    pipeline: UploadPipelineDep,
    suggester: KeywordSuggesterDep,
    title: str = Form(..., min_length=1, max_length=120),
    category: str = Form(...),
    file_type: str = Form(...),
    description: str = Form("", max_length=5000),
    credits: str = Form("", max_length=500),
    file: UploadFile = File(..., description="Primary asset file (.rbxm, .rbxl, .rbxmx)"),
    thumbnail: UploadFile = File(..., description="Thumbnail image"),
    video: UploadFile = File(..., description="Preview video"),
) -> AssetResponse:
    try:
        parsed_category = Category(category)
        parsed_file_type = FileType(file_type if file_type.startswith(".") else f".{file_type}")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    artifacts = ArtifactSet(
        primary=await _read_upload(file, "file"),
        thumbnail=await _read_upload(thumbnail, "thumbnail"),
        video=await _read_upload(video, "video"),
    )

    total_size = sum(len(a.data) for a in (artifacts.primary, artifacts.thumbnail, artifacts.video))
    if total_size > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {settings.max_upload_size_mb} MB",
        )

    keywords = await suggest_keywords(suggester, f"{title}\n{description}")

    asset = new_asset(
        user=user,
        title=title,
        category=parsed_category,
        file_type=parsed_file_type,
        description=description,
        credits=credits,
        keywords=keywords,
        id_prefix=settings.asset_id_prefix,
    )

    logger.info(
        "Processing asset upload",
        extra={
            "asset_id": asset.id,
            "user_id": user.id,
            "size_bytes": total_size,
        }
    )

    try:
        committed = await pipeline.upload(
            asset,
            artifacts,
            on_progress=lambda label: logger.debug(
                "Upload progress", extra={"asset_id": asset.id, "phase": label}
            ),
        )
    except (StorageError, ValueError) as e:
        raise_for_storage_error(e)

    return AssetResponse.from_asset(committed)


@router.post(
    "/{asset_id}/like",
    response_model=AssetResponse,
    summary="Like or unlike an asset",
)
async def toggle_like(
    asset_id: str,
    user: CurrentUser,
    api_key: AuthenticatedKey,
    mutations: MutationsDep,
) -> AssetResponse:
    try:
        asset = await mutations.toggle_like(asset_id, user.id)
    except (StorageError, ValueError) as e:
        raise_for_storage_error(e)
    return AssetResponse.from_asset(asset)


@router.post(
    "/{asset_id}/download",
    response_model=AssetResponse,
    summary="Record a download",
)
async def record_download(
    asset_id: str,
    api_key: AuthenticatedKey,
    mutations: MutationsDep,
) -> AssetResponse:
    try:
        asset = await mutations.increment_download(asset_id)
    except StorageError as e:
        raise_for_storage_error(e)
    return AssetResponse.from_asset(asset)


@router.post(
    "/{asset_id}/report",
    response_model=AssetResponse,
    summary="Report an asset",
)
async def report_asset(
    asset_id: str,
    api_key: AuthenticatedKey,
    mutations: MutationsDep,
) -> AssetResponse:
    try:
        asset = await mutations.increment_report(asset_id)
    except StorageError as e:
        raise_for_storage_error(e)
    return AssetResponse.from_asset(asset)


@router.post(
    "/{asset_id}/comments",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on an asset",
)
async def add_comment(
    asset_id: str,
    request: CommentRequest,
    user: CurrentUser,
    api_key: AuthenticatedKey,
    mutations: MutationsDep,
) -> AssetResponse:
    try:
        asset = await mutations.add_comment(asset_id, user, request.text)
    except (StorageError, ValueError) as e:
        raise_for_storage_error(e)
    return AssetResponse.from_asset(asset)


@router.delete(
    "/{asset_id}",
    response_model=RemoveResponse,
    summary="Remove an asset",
    description="Removes the registry record, then deletes its artifacts on a best-effort basis",
)
async def remove_asset(
    asset_id: str,
    api_key: AuthenticatedKey,
    mutations: MutationsDep,
) -> RemoveResponse:
    try:
        deleted = await mutations.remove_asset(asset_id)
    except StorageError as e:
        raise_for_storage_error(e)

    logger.info("Asset removal requested", extra={"asset_id": asset_id, "deleted": deleted})
    return RemoveResponse(asset_id=asset_id, artifacts_deleted=deleted)
