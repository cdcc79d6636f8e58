"""
What the registry needs from a versioned file store.

The protocol lives here, in core, so the registry logic never depends
on a particular backing store. infrastructure.storage provides the
GitHub and in-memory implementations.
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class FileSnapshot:
    """Content of a file together with the version token it was read at."""
    path: str
    content: bytes
    sha: str


@dataclass(frozen=True)
class FileEntry:
    """One child of a listed folder."""
    path: str
    name: str
    sha: str
    type: str = "file"  # "file" or "dir"

    @property
    def is_file(self) -> bool:
        return self.type == "file"


class VersionedFileClient(Protocol):
    """
    Operations the storage engine needs from the backing store.

    Implementations must surface a stale version token as ConflictError
    and never apply such a write.
    """

    async def read_file(self, path: str) -> FileSnapshot:
        """Fetch current bytes and sha. Raises NotFoundError if absent."""
        ...

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        """Create (no sha) or replace (matching sha) a file. Returns the new sha."""
        ...

    async def list_folder(self, path: str) -> list[FileEntry]:
        """List immediate children; empty when the folder does not exist."""
        ...

    async def delete_file(self, path: str, sha: str, message: str) -> bool:
        """Delete a file conditioned on its sha. Returns success."""
        ...

    def public_url(self, path: str) -> str:
        """Deterministic retrieval URL for a stored path."""
        ...

    async def aclose(self) -> None:
        ...
