"""
Asset registry: a small document database over versioned files.

Contains the record model, the conflict-retrying registry store, the
upload pipeline and the mutation operations built on top of it.
"""

from .errors import (
    ConflictError,
    NotFoundError,
    PartialUploadError,
    ReadError,
    StorageError,
    WriteError,
)
from .files import FileEntry, FileSnapshot, VersionedFileClient
from .models import Asset, Category, Comment, FileType, User, generate_asset_id, new_asset
from .mutations import AssetMutations
from .store import RegistryStore
from .upload import ArtifactFile, ArtifactSet, AssetUploadPipeline

__all__ = [
    "Asset",
    "ArtifactFile",
    "ArtifactSet",
    "AssetMutations",
    "AssetUploadPipeline",
    "Category",
    "Comment",
    "FileEntry",
    "FileSnapshot",
    "ConflictError",
    "FileType",
    "NotFoundError",
    "PartialUploadError",
    "ReadError",
    "RegistryStore",
    "StorageError",
    "User",
    "VersionedFileClient",
    "WriteError",
    "generate_asset_id",
    "new_asset",
]
