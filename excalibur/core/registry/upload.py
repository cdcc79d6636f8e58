"""
Multi-artifact upload pipeline.

An asset is three binary artifacts (thumbnail, preview video, primary
file) plus a metadata.json copy, stored under <artifact_root>/<id>/,
and one registry record pointing at them. The backing store has no
multi-file commit, so the upload is a saga:

1. bootstrap the artifact root
2. write thumbnail, preview, primary file
3. compute retrieval URLs
4. write metadata.json
5. upsert the record into the registry  <- authoritative

The registry write decides whether the asset exists. A failure before
it leaves no visible asset, only orphaned blobs; nothing is rolled back.
Every step's failure is reported as PartialUploadError naming the step.
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .errors import ConflictError, PartialUploadError, StorageError
from .files import VersionedFileClient
from .models import Asset
from .store import RegistryStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

PLACEHOLDER_NAME = ".gitkeep"
METADATA_NAME = "metadata.json"

THUMBNAIL_SLOT = "thumbnail"
PREVIEW_SLOT = "preview"
PRIMARY_SLOT = "file"

DEFAULT_THUMBNAIL_EXT = "png"
DEFAULT_PREVIEW_EXT = "mp4"


@dataclass(frozen=True)
class ArtifactFile:
    """An uploaded file: its original name and its bytes."""
    filename: str
    data: bytes

    def extension(self, default: str) -> str:
        """Lowercased extension of `filename`, or `default` if it has none."""
        name = self.filename.rsplit("/", 1)[-1]
        if "." not in name.strip("."):
            return default
        ext = name.rsplit(".", 1)[-1].lower()
        return ext or default


@dataclass(frozen=True)
class ArtifactSet:
    """The three binary artifacts that make up one asset."""
    primary: ArtifactFile
    thumbnail: ArtifactFile
    video: ArtifactFile


class AssetUploadPipeline:
    """Stores an asset's artifacts and commits its registry record."""

    def __init__(
        self,
        file_client: VersionedFileClient,
        registry: RegistryStore,
        artifact_root: str,
    ) -> None:
        self._files = file_client
        self._registry = registry
        self._root = artifact_root.strip("/")

    def folder_for(self, asset_id: str) -> str:
        return f"{self._root}/{asset_id}"

    async def upload(
        self,
        asset: Asset,
        artifacts: ArtifactSet,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Asset:
        """
        Store `artifacts` for `asset` and commit it to the registry.

        `asset.id` must already be assigned. URL fields are overwritten
        with the locations the artifacts were written to.

        Returns the committed record.

        Raises:
            ValueError: empty id or empty artifact
            PartialUploadError: a step failed; `step` says which one
        """
        self._validate(asset, artifacts)

        report = on_progress or (lambda label: None)
        asset_id = asset.id
        folder = self.folder_for(asset_id)

        logger.info(
            "Starting asset upload",
            extra={
                "asset_id": asset_id,
                "size_bytes": sum(
                    len(a.data) for a in (artifacts.primary, artifacts.thumbnail, artifacts.video)
                ),
            }
        )

        report("Preparing storage")
        await self._step(asset_id, "bootstrap", self._ensure_root())

        # Paths already present mean a retry of an earlier failed upload
        existing = await self._step(asset_id, "inspect", self._existing_shas(folder))

        thumbnail_path = f"{folder}/{THUMBNAIL_SLOT}.{artifacts.thumbnail.extension(DEFAULT_THUMBNAIL_EXT)}"
        preview_path = f"{folder}/{PREVIEW_SLOT}.{artifacts.video.extension(DEFAULT_PREVIEW_EXT)}"
        primary_path = f"{folder}/{PRIMARY_SLOT}.{artifacts.primary.extension(asset.file_type.extension)}"

        report("Uploading thumbnail")
        await self._step(
            asset_id,
            "thumbnail",
            self._put(thumbnail_path, artifacts.thumbnail.data, f"Upload thumbnail for {asset_id}", existing),
        )

        report("Uploading preview video")
        await self._step(
            asset_id,
            "preview",
            self._put(preview_path, artifacts.video.data, f"Upload preview for {asset_id}", existing),
        )

        report("Uploading asset file")
        await self._step(
            asset_id,
            "file",
            self._put(primary_path, artifacts.primary.data, f"Upload file for {asset_id}", existing),
        )

        committed = replace(
            asset,
            thumbnail_url=self._files.public_url(thumbnail_path),
            video_url=self._files.public_url(preview_path),
            file_url=self._files.public_url(primary_path),
        )

        report("Writing metadata")
        metadata = json.dumps(committed.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        await self._step(
            asset_id,
            "metadata",
            self._put(f"{folder}/{METADATA_NAME}", metadata, f"Upload metadata for {asset_id}", existing),
        )

        report("Publishing to registry")
        await self._step(asset_id, "registry", self._registry.upsert(committed))

        logger.info("Asset uploaded", extra={"asset_id": asset_id})
        report("Done")

        return committed

    async def _ensure_root(self) -> None:
        """Create the artifact root with a placeholder if it is missing."""
        if await self._files.list_folder(self._root):
            return

        try:
            await self._files.write_file(
                f"{self._root}/{PLACEHOLDER_NAME}",
                b"",
                "Initialize asset storage",
            )
        except ConflictError:
            # Another caller created it between our listing and our write
            logger.debug("Artifact root created concurrently", extra={"root": self._root})

    async def _existing_shas(self, folder: str) -> dict[str, str]:
        entries = await self._files.list_folder(folder)
        return {e.path: e.sha for e in entries if e.is_file}

    async def _put(
        self,
        path: str,
        data: bytes,
        message: str,
        existing: dict[str, str],
    ) -> str:
        return await self._files.write_file(path, data, message, sha=existing.get(path))

    async def _step(self, asset_id: str, step: str, operation):
        try:
            return await operation
        except StorageError as e:
            logger.error(
                "Asset upload failed",
                extra={"asset_id": asset_id, "step": step, "error": str(e)}
            )
            raise PartialUploadError(asset_id, step, e) from e

    @staticmethod
    def _validate(asset: Asset, artifacts: ArtifactSet) -> None:
        if not asset.id.strip():
            raise ValueError("Asset id must be assigned before upload")
        for slot, artifact in (
            (PRIMARY_SLOT, artifacts.primary),
            (THUMBNAIL_SLOT, artifacts.thumbnail),
            (PREVIEW_SLOT, artifacts.video),
        ):
            if not artifact.data:
                raise ValueError(f"Artifact '{slot}' is empty")
