"""
Versioned file client for the registry backing store.

The backing store is a GitHub repository accessed through the REST
contents API. It only offers whole-file create/replace guarded by the
file's blob sha, which we use as an optimistic-concurrency version
token: read (content, sha), write new content conditioned on that sha,
and treat a mismatch as a conflict rather than silently overwriting.

There is no local cache. Every read goes back to GitHub with a
cache-busting parameter; a stale sha would turn every subsequent write
into a conflict.

Mock mode keeps files in memory with the same precondition rules, so
the registry and upload logic can be exercised without a repository.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from ...core.registry.errors import (
    ConflictError,
    NotFoundError,
    ReadError,
    WriteError,
)
from ...core.registry.files import FileEntry, FileSnapshot, VersionedFileClient
from . import codec

logger = logging.getLogger(__name__)


@dataclass
class GitHubConfig:
    """
    Connection settings for the GitHub contents API.

    The token is assumed to be authorized for every read, write and
    delete the engine performs.
    """
    token: str
    owner: str
    repo: str
    branch: str = "main"
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    timeout_seconds: float = 15.0

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("GitHub token is required")
        if not self.owner or not self.repo:
            raise ValueError("GitHub owner and repo are required")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


def _normalize_path(path: str) -> str:
    return path.strip("/")


class GitHubContentsClient:
    """
    VersionedFileClient backed by the GitHub REST contents API.

    Uses a single httpx.AsyncClient so connections are pooled across
    calls. Pass `transport` to route requests somewhere other than the
    network (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        config: GitHubConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._http = httpx.AsyncClient(
            base_url=f"{config.api_url.rstrip('/')}/repos/{config.owner}/{config.repo}",
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

        logger.info(
            "Initialized GitHub contents client",
            extra={
                "repo": f"{config.owner}/{config.repo}",
                "branch": config.branch,
            }
        )

    async def read_file(self, path: str) -> FileSnapshot:
        path = _normalize_path(path)

        try:
            response = await self._http.get(
                self._contents_url(path),
                params={"ref": self._config.branch, "t": str(time.time_ns())},
                headers={"Cache-Control": "no-cache"},
            )
        except httpx.HTTPError as e:
            logger.error("Failed to read file", extra={"path": path, "error": str(e)})
            raise ReadError(f"Read of {path} failed: {e}")

        if response.status_code == 404:
            raise NotFoundError(f"File not found: {path}")
        if not response.is_success:
            raise ReadError(
                f"Read of {path} failed ({response.status_code}): {self._error_message(response)}"
            )

        payload = self._json(response, f"Read of {path}")
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise ReadError(f"Path is not a file: {path}")

        sha = payload.get("sha")
        if not sha:
            raise ReadError(f"Read of {path} returned no sha")
        if payload.get("encoding") == "none":
            # Above the inline size limit the contents API omits the body
            content = await self._read_blob(sha)
        else:
            content = self._decode(payload.get("content", ""), f"Read of {path}")

        logger.debug(
            "Read file",
            extra={"path": path, "sha": sha, "size_bytes": len(content)}
        )

        return FileSnapshot(path=path, content=content, sha=sha)

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        path = _normalize_path(path)
        body = {
            "message": message,
            "content": codec.encode(content),
            "branch": self._config.branch,
        }
        if sha is not None:
            body["sha"] = sha

        try:
            response = await self._http.put(self._contents_url(path), json=body)
        except httpx.HTTPError as e:
            logger.error("Failed to write file", extra={"path": path, "error": str(e)})
            raise WriteError(f"Write of {path} failed: {e}")

        if not response.is_success:
            error = self._error_message(response)
            if self._is_precondition_failure(response, error):
                logger.info(
                    "Write rejected by version check",
                    extra={"path": path, "sha": sha, "status": response.status_code}
                )
                raise ConflictError(f"Version conflict writing {path}: {error}")

            logger.error(
                "Write rejected",
                extra={"path": path, "status": response.status_code, "error": error}
            )
            raise WriteError(
                f"Write of {path} failed ({response.status_code}): {error}",
                status_code=response.status_code,
            )

        try:
            new_sha = response.json()["content"]["sha"]
        except (ValueError, KeyError, TypeError) as e:
            raise WriteError(
                f"Write of {path} returned an unexpected response: {e}",
                status_code=response.status_code,
            ) from e

        logger.debug(
            "Wrote file",
            extra={"path": path, "sha": new_sha, "size_bytes": len(content)}
        )

        return new_sha

    async def list_folder(self, path: str) -> list[FileEntry]:
        path = _normalize_path(path)

        try:
            response = await self._http.get(
                self._contents_url(path),
                params={"ref": self._config.branch, "t": str(time.time_ns())},
                headers={"Cache-Control": "no-cache"},
            )
        except httpx.HTTPError as e:
            logger.error("Failed to list folder", extra={"path": path, "error": str(e)})
            raise ReadError(f"Listing of {path} failed: {e}")

        if response.status_code == 404:
            return []
        if not response.is_success:
            raise ReadError(
                f"Listing of {path} failed ({response.status_code}): {self._error_message(response)}"
            )

        payload = self._json(response, f"Listing of {path}")
        if not isinstance(payload, list):
            raise ReadError(f"Path is not a folder: {path}")

        return [
            FileEntry(
                path=item["path"],
                name=item["name"],
                sha=item.get("sha", ""),
                type=item.get("type", "file"),
            )
            for item in payload
        ]

    async def delete_file(self, path: str, sha: str, message: str) -> bool:
        path = _normalize_path(path)
        body = {"message": message, "sha": sha, "branch": self._config.branch}

        try:
            response = await self._http.request("DELETE", self._contents_url(path), json=body)
        except httpx.HTTPError as e:
            logger.warning("Failed to delete file", extra={"path": path, "error": str(e)})
            return False

        if not response.is_success:
            logger.warning(
                "Delete rejected",
                extra={
                    "path": path,
                    "status": response.status_code,
                    "error": self._error_message(response),
                }
            )
            return False

        logger.debug("Deleted file", extra={"path": path})
        return True

    def public_url(self, path: str) -> str:
        """raw.githubusercontent.com URL for `path` on the configured branch."""
        return (
            f"{self._config.raw_url.rstrip('/')}/{self._config.owner}/"
            f"{self._config.repo}/{self._config.branch}/{_normalize_path(path)}"
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _read_blob(self, sha: str) -> bytes:
        try:
            response = await self._http.get(f"/git/blobs/{sha}")
        except httpx.HTTPError as e:
            raise ReadError(f"Blob read of {sha} failed: {e}")

        if not response.is_success:
            raise ReadError(
                f"Blob read of {sha} failed ({response.status_code}): {self._error_message(response)}"
            )
        payload = self._json(response, f"Blob read of {sha}")
        if not isinstance(payload, dict):
            raise ReadError(f"Blob read of {sha} returned an unexpected payload")
        return self._decode(payload.get("content", ""), f"Blob read of {sha}")

    def _contents_url(self, path: str) -> str:
        return f"/contents/{quote(path, safe='/')}"

    @staticmethod
    def _json(response: httpx.Response, action: str):
        try:
            return response.json()
        except ValueError as e:
            logger.error("Unreadable response body", extra={"action": action, "error": str(e)})
            raise ReadError(f"{action} returned a body that is not JSON: {e}") from e

    @staticmethod
    def _decode(content: str, action: str) -> bytes:
        try:
            return codec.decode(content)
        except ValueError as e:
            logger.error("Undecodable file content", extra={"action": action, "error": str(e)})
            raise ReadError(f"{action} returned content that is not base64: {e}") from e

    @staticmethod
    def _is_precondition_failure(response: httpx.Response, error: str) -> bool:
        # 409: sha does not match. 422: sha missing for an existing file.
        if response.status_code == 409:
            return True
        return response.status_code == 422 and "sha" in error.lower()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return response.text or response.reason_phrase


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

def blob_sha(content: bytes) -> str:
    """Git blob hash of `content`, the same value GitHub reports as sha."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()


class MockVersionedFileClient:
    """
    In-memory backing store with GitHub's precondition rules.

    - writing without a sha onto an existing file is a conflict
    - writing with a sha that is not the current one is a conflict
    - folders exist only while they contain files

    `read_latency` delays each read after its snapshot is taken, which
    lets concurrent callers interleave the way real network calls do.
    """

    def __init__(
        self,
        base_url: str = "mock://storage",
        read_latency: Optional[float] = None,
    ) -> None:
        self._files: dict[str, tuple[bytes, str]] = {}
        self._base_url = base_url.rstrip("/")
        self._read_latency = read_latency
        self.commit_messages: list[str] = []
        logger.info("Initialized mock file client (in-memory)")

    async def read_file(self, path: str) -> FileSnapshot:
        path = _normalize_path(path)
        entry = self._files.get(path)
        if entry is None:
            raise NotFoundError(f"File not found: {path}")

        snapshot = FileSnapshot(path=path, content=entry[0], sha=entry[1])
        if self._read_latency is not None:
            await asyncio.sleep(self._read_latency)
        return snapshot

    async def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        path = _normalize_path(path)
        current = self._files.get(path)

        if current is None and sha is not None:
            raise ConflictError(f"Version conflict writing {path}: file does not exist")
        if current is not None and sha != current[1]:
            raise ConflictError(f"Version conflict writing {path}: sha does not match")

        new_sha = blob_sha(content)
        self._files[path] = (content, new_sha)
        self.commit_messages.append(message)

        logger.debug(
            "Stored file in mock storage",
            extra={"path": path, "sha": new_sha, "size_bytes": len(content)}
        )

        return new_sha

    async def list_folder(self, path: str) -> list[FileEntry]:
        prefix = _normalize_path(path)
        prefix = f"{prefix}/" if prefix else ""

        children: dict[str, FileEntry] = {}
        for key, (_, sha) in self._files.items():
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            name, _, remainder = rest.partition("/")
            if name in children:
                continue
            if remainder:
                children[name] = FileEntry(path=f"{prefix}{name}", name=name, sha="", type="dir")
            else:
                children[name] = FileEntry(path=key, name=name, sha=sha, type="file")

        return sorted(children.values(), key=lambda e: e.name)

    async def delete_file(self, path: str, sha: str, message: str) -> bool:
        path = _normalize_path(path)
        current = self._files.get(path)
        if current is None or current[1] != sha:
            return False

        del self._files[path]
        self.commit_messages.append(message)
        return True

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/{_normalize_path(path)}"

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_file_client(
    config: Optional[GitHubConfig] = None,
    mock_mode: bool = False,
) -> VersionedFileClient:
    """
    Create a file client based on configuration.

    Args:
        config: GitHub configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory client

    Returns:
        VersionedFileClient implementation (GitHub or Mock)
    """
    if mock_mode:
        return MockVersionedFileClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return GitHubContentsClient(config)
