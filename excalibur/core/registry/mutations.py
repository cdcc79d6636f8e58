"""
Engagement and lifecycle operations on registry records.

Each operation is a small updater run through
RegistryStore.find_and_update, so conflict handling lives in one place.
Updaters build new records with dataclasses.replace instead of mutating
the one they were given.
"""

import logging
from dataclasses import replace

from .errors import StorageError
from .files import VersionedFileClient
from .models import Asset, Comment, User
from .store import RegistryStore

logger = logging.getLogger(__name__)


class AssetMutations:
    """Likes, counters, comments and removal for registry assets."""

    def __init__(
        self,
        registry: RegistryStore,
        file_client: VersionedFileClient,
        artifact_root: str,
    ) -> None:
        self._registry = registry
        self._files = file_client
        self._root = artifact_root.strip("/")

    async def toggle_like(self, asset_id: str, user_id: str) -> Asset:
        """Add `user_id` to the asset's likes, or remove it if present."""
        if not user_id:
            raise ValueError("user_id is required")

        def updater(asset: Asset) -> Asset:
            if user_id in asset.likes:
                likes = [u for u in asset.likes if u != user_id]
            else:
                likes = asset.likes + [user_id]
            return replace(asset, likes=likes)

        return await self._registry.find_and_update(asset_id, updater)

    async def increment_download(self, asset_id: str) -> Asset:
        return await self._registry.find_and_update(
            asset_id,
            lambda asset: replace(asset, download_count=asset.download_count + 1),
        )

    async def increment_report(self, asset_id: str) -> Asset:
        updated = await self._registry.find_and_update(
            asset_id,
            lambda asset: replace(asset, reports=asset.reports + 1),
        )
        logger.info("Asset reported", extra={"asset_id": asset_id, "reports": updated.reports})
        return updated

    async def add_comment(self, asset_id: str, user: User, text: str) -> Asset:
        """Prepend a comment by `user`. Newest comments come first."""
        comment = Comment(
            user_id=user.id,
            user_name=user.name,
            user_avatar=user.avatar,
            text=text.strip(),
        )

        return await self._registry.find_and_update(
            asset_id,
            lambda asset: replace(asset, comments=[comment] + asset.comments),
        )

    async def remove_asset(self, asset_id: str) -> int:
        """
        Remove an asset and, best effort, its artifact files.

        The registry removal is authoritative and its errors propagate.
        Artifact deletion afterwards only logs failures; leftover files
        are invisible without a registry record.

        Returns the number of artifact files deleted.
        """
        removed = await self._registry.remove(asset_id)
        logger.info("Asset removed from registry", extra={"asset_id": asset_id, "found": removed})

        folder = f"{self._root}/{asset_id}"
        try:
            entries = await self._files.list_folder(folder)
        except StorageError as e:
            logger.warning(
                "Could not list artifacts for cleanup",
                extra={"asset_id": asset_id, "error": str(e)}
            )
            return 0

        deleted = 0
        for entry in entries:
            if not entry.is_file:
                continue
            if await self._files.delete_file(entry.path, entry.sha, f"Delete {entry.name} for {asset_id}"):
                deleted += 1
            else:
                logger.warning(
                    "Could not delete artifact",
                    extra={"asset_id": asset_id, "path": entry.path}
                )

        logger.info(
            "Artifact cleanup finished",
            extra={"asset_id": asset_id, "deleted": deleted, "total": len(entries)}
        )
        return deleted
