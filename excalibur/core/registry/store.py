"""
Registry store: a mutable collection on top of whole-file writes.

The registry is one JSON document holding every Asset record. The
backing store can only replace that document as a whole, guarded by its
sha, so every change is expressed as a pure function over the full list
and run through `update_registry`:

    read (records, sha) -> transform(records) -> write(new, sha)

If another writer got in first the write is rejected with a conflict,
and we start again from a fresh read. Each attempt reads before it
writes, which is what keeps a stale view from overwriting a concurrent
change. Attempts are bounded with jittered exponential backoff, so
writers that lost the same round do not all wake up together; running
out raises ConflictError.

All mutations go through this one primitive. Nothing else in the code
base writes the registry document.
"""

import asyncio
import json
import logging
import random
from typing import Callable, Optional

from .errors import ConflictError, NotFoundError, ReadError
from .files import VersionedFileClient
from .models import Asset

logger = logging.getLogger(__name__)

Transform = Callable[[list[Asset]], list[Asset]]
Updater = Callable[[Asset], Asset]


class RegistryStore:
    """Owns the registry document and every read and write of it."""

    def __init__(
        self,
        file_client: VersionedFileClient,
        registry_path: str,
        max_attempts: int = 5,
        backoff_seconds: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")

        self._files = file_client
        self._path = registry_path
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._rng = rng or random.Random()

    @property
    def path(self) -> str:
        return self._path

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_all(self) -> list[Asset]:
        """Return the full current collection."""
        records, _ = await self._read()
        return records

    async def get(self, asset_id: str) -> Asset:
        """Return one record. Raises NotFoundError if it does not exist."""
        for record in await self.get_all():
            if record.id == asset_id:
                return record
        raise NotFoundError(f"Asset not found: {asset_id}")

    # -----------------------------------------------------------------------
    # The write primitive
    # -----------------------------------------------------------------------

    async def update_registry(self, transform: Transform, message: str) -> list[Asset]:
        """
        Apply `transform` to the collection and persist the result.

        `transform` receives a fresh copy of the list on every attempt and
        may be called more than once, so it must not have side effects
        beyond building its return value. Exceptions it raises propagate
        immediately and are not retried. If the result equals what was
        read, nothing is written.

        Raises:
            ConflictError: every attempt lost the race to another writer
            ReadError / WriteError: the backing store failed otherwise
        """
        for attempt in range(1, self._max_attempts + 1):
            records, sha = await self._read()
            updated = transform(list(records))
            self._check_unique(updated)

            if updated == records:
                logger.debug("Registry unchanged, skipping write", extra={"commit_message": message})
                return updated

            try:
                await self._files.write_file(
                    self._path,
                    self._serialize(updated),
                    message,
                    sha=sha,
                )
            except ConflictError:
                logger.info(
                    "Registry write conflict, retrying",
                    extra={"attempt": attempt, "max_attempts": self._max_attempts}
                )
                if attempt < self._max_attempts:
                    await self._backoff(attempt)
                continue

            logger.debug(
                "Registry updated",
                extra={"attempt": attempt, "record_count": len(updated)}
            )
            return updated

        logger.warning(
            "Registry update gave up after repeated conflicts",
            extra={"attempts": self._max_attempts, "commit_message": message}
        )
        raise ConflictError(
            f"Registry update failed after {self._max_attempts} attempts: {message}",
            attempts=self._max_attempts,
        )

    # -----------------------------------------------------------------------
    # Derived operations
    # -----------------------------------------------------------------------

    async def upsert(self, asset: Asset) -> Asset:
        """Replace any record with the same id and put `asset` first."""

        def transform(records: list[Asset]) -> list[Asset]:
            return [asset] + [r for r in records if r.id != asset.id]

        await self.update_registry(transform, f"Upsert asset {asset.id}")
        return asset

    async def find_and_update(self, asset_id: str, updater: Updater) -> Asset:
        """
        Replace the record `asset_id` with `updater(record)`.

        Other records keep their order. Raises NotFoundError when no
        record has that id.
        """
        result: dict[str, Asset] = {}

        def transform(records: list[Asset]) -> list[Asset]:
            for index, record in enumerate(records):
                if record.id == asset_id:
                    updated = updater(record)
                    if updated.id != asset_id:
                        raise ValueError("Updater must not change the asset id")
                    result["asset"] = updated
                    return records[:index] + [updated] + records[index + 1:]
            raise NotFoundError(f"Asset not found: {asset_id}")

        await self.update_registry(transform, f"Update asset {asset_id}")
        return result["asset"]

    async def remove(self, asset_id: str) -> bool:
        """
        Drop the record `asset_id`. Missing records are not an error.

        Returns True if a record was removed. When there is nothing to
        remove the transform hands back the collection unchanged, so
        update_registry makes no write.
        """
        removed: dict[str, bool] = {"found": False}

        def transform(records: list[Asset]) -> list[Asset]:
            kept = [r for r in records if r.id != asset_id]
            removed["found"] = len(kept) != len(records)
            return kept

        await self.update_registry(transform, f"Remove asset {asset_id}")
        return removed["found"]

    # -----------------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------------

    async def _read(self) -> tuple[list[Asset], Optional[str]]:
        try:
            snapshot = await self._files.read_file(self._path)
        except NotFoundError:
            return [], None
        return self._deserialize(snapshot.content), snapshot.sha

    def _serialize(self, records: list[Asset]) -> bytes:
        document = [r.to_dict() for r in records]
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")

    def _deserialize(self, content: bytes) -> list[Asset]:
        if not content.strip():
            return []

        try:
            document = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ReadError(f"Registry document is not valid JSON: {e}")

        # Older deployments kept {"assets": [...], "users": [...]} in one file
        if isinstance(document, dict):
            document = document.get("assets", [])
        if not isinstance(document, list):
            raise ReadError("Registry document must be a list of records")

        records: list[Asset] = []
        seen: set[str] = set()
        for index, item in enumerate(document):
            try:
                record = Asset.from_dict(item)
            except ValueError as e:
                raise ReadError(f"Invalid registry record at index {index}: {e}")

            if record.id in seen:
                logger.warning("Dropping duplicate registry record", extra={"asset_id": record.id})
                continue
            seen.add(record.id)
            records.append(record)

        return records

    @staticmethod
    def _check_unique(records: list[Asset]) -> None:
        ids = [r.id for r in records]
        if len(ids) != len(set(ids)):
            raise ValueError("Registry records must have unique ids")

    async def _backoff(self, attempt: int) -> None:
        # Jitter spreads out writers that conflicted in the same round
        delay = self._backoff_seconds * (2 ** (attempt - 1)) * self._rng.uniform(0.5, 1.5)
        if delay > 0:
            await asyncio.sleep(delay)
        else:
            # Still yield so competing writers get a turn
            await asyncio.sleep(0)
