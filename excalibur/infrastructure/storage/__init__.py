"""
Versioned file storage for the registry and asset artifacts.

Backed by the GitHub contents API, with an in-memory mock for local
development without credentials.
"""

from .client import (
    FileEntry,
    FileSnapshot,
    GitHubConfig,
    GitHubContentsClient,
    MockVersionedFileClient,
    VersionedFileClient,
    create_file_client,
)

__all__ = [
    "FileEntry",
    "FileSnapshot",
    "GitHubConfig",
    "GitHubContentsClient",
    "MockVersionedFileClient",
    "VersionedFileClient",
    "create_file_client",
]
