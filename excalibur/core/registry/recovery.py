"""
Rebuild registry entries from per-asset metadata copies.

Every upload writes <artifact_root>/<id>/metadata.json next to the
artifacts. If the registry document is lost or an upload failed after
its metadata write but before the registry commit, those copies are
enough to put the records back.

Only ids missing from the registry are added; existing records are left
alone. Note that an asset whose removal left artifacts behind will be
resurrected, so run with dry_run first.
"""

import json
import logging

from .errors import NotFoundError, StorageError
from .files import VersionedFileClient
from .models import Asset
from .store import RegistryStore
from .upload import METADATA_NAME

logger = logging.getLogger(__name__)


async def load_artifact_metadata(
    file_client: VersionedFileClient,
    artifact_root: str,
) -> list[Asset]:
    """Read every readable metadata.json under the artifact root."""
    root = artifact_root.strip("/")
    found: list[Asset] = []

    for entry in await file_client.list_folder(root):
        if entry.is_file:
            continue

        path = f"{entry.path}/{METADATA_NAME}"
        try:
            snapshot = await file_client.read_file(path)
            asset = Asset.from_dict(json.loads(snapshot.content.decode("utf-8")))
        except NotFoundError:
            logger.info("Asset folder has no metadata", extra={"folder": entry.path})
            continue
        except (StorageError, ValueError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.warning("Skipping unreadable metadata", extra={"path": path, "error": str(e)})
            continue

        if asset.id != entry.name:
            logger.warning(
                "Metadata id does not match its folder",
                extra={"path": path, "asset_id": asset.id}
            )
            continue
        found.append(asset)

    return found


async def rebuild_registry(
    file_client: VersionedFileClient,
    registry: RegistryStore,
    artifact_root: str,
    dry_run: bool = False,
) -> list[str]:
    """
    Add registry records for assets that only exist as artifacts.

    Returns the ids that were (or, with dry_run, would be) recovered.
    """
    candidates = await load_artifact_metadata(file_client, artifact_root)
    if not candidates:
        return []

    known = {r.id for r in await registry.get_all()}
    pending = [a.id for a in candidates if a.id not in known]
    if dry_run or not pending:
        return pending

    recovered: list[str] = []

    def transform(records: list[Asset]) -> list[Asset]:
        present = {r.id for r in records}
        missing = [a for a in candidates if a.id not in present]
        missing.sort(key=lambda a: a.timestamp, reverse=True)
        recovered[:] = [a.id for a in missing]
        return records + missing

    await registry.update_registry(transform, "Recover asset records from metadata")

    logger.info("Registry rebuilt from metadata", extra={"recovered": len(recovered)})
    return recovered
