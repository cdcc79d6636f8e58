"""
Unit tests for the asset upload pipeline.

Uploads run against the in-memory file client, whose public URLs are
mock://storage/<path>, so every expected location is deterministic.
"""

import json

import pytest

from excalibur.core.registry.errors import ConflictError, PartialUploadError, WriteError
from excalibur.core.registry.models import FileType
from excalibur.core.registry.store import RegistryStore
from excalibur.core.registry.upload import ArtifactFile, ArtifactSet, AssetUploadPipeline
from excalibur.infrastructure.storage.client import MockVersionedFileClient

REGISTRY_PATH = "Marketplace/registry.json"
ARTIFACT_ROOT = "Marketplace/Assets"
FOLDER = "Marketplace/Assets/EXC-ABC123-XYZ"


class FlakyClient(MockVersionedFileClient):
    """Fails writes to any path containing `fail_on` until it is cleared."""

    def __init__(self, fail_on=None) -> None:
        super().__init__()
        self.fail_on = fail_on

    async def write_file(self, path, content, message, sha=None):
        if self.fail_on and self.fail_on in path:
            raise WriteError(f"Write of {path} failed (500): boom", status_code=500)
        return await super().write_file(path, content, message, sha=sha)


def artifacts(primary_name: str = "sword.rbxm") -> ArtifactSet:
    return ArtifactSet(
        primary=ArtifactFile(primary_name, b"<roblox/>"),
        thumbnail=ArtifactFile("thumb.PNG", b"\x89PNG"),
        video=ArtifactFile("clip.mp4", b"\x00\x00\x00\x18ftyp"),
    )


def pipeline_for(files) -> tuple[AssetUploadPipeline, RegistryStore]:
    registry = RegistryStore(files, REGISTRY_PATH, backoff_seconds=0)
    return AssetUploadPipeline(files, registry, ARTIFACT_ROOT), registry


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestUpload:
    """Tests for a successful upload."""

    @pytest.mark.asyncio
    async def test_upload_commits_record_with_artifact_urls(self, files, make_asset):
        pipeline, registry = pipeline_for(files)

        committed = await pipeline.upload(make_asset(), artifacts())

        assert committed.thumbnail_url == f"mock://storage/{FOLDER}/thumbnail.png"
        assert committed.video_url == f"mock://storage/{FOLDER}/preview.mp4"
        assert committed.file_url == f"mock://storage/{FOLDER}/file.rbxm"
        assert await registry.get_all() == [committed]

    @pytest.mark.asyncio
    async def test_artifact_bytes_are_stored_verbatim(self, files, make_asset):
        pipeline, _ = pipeline_for(files)

        await pipeline.upload(make_asset(), artifacts())

        assert (await files.read_file(f"{FOLDER}/file.rbxm")).content == b"<roblox/>"
        assert (await files.read_file(f"{FOLDER}/thumbnail.png")).content == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_metadata_copy_matches_registry_record(self, files, make_asset):
        pipeline, _ = pipeline_for(files)

        committed = await pipeline.upload(make_asset(), artifacts())

        metadata = json.loads((await files.read_file(f"{FOLDER}/metadata.json")).content)
        assert metadata == committed.to_dict()

    @pytest.mark.asyncio
    async def test_primary_without_extension_uses_file_type(self, files, make_asset):
        pipeline, _ = pipeline_for(files)

        committed = await pipeline.upload(make_asset(file_type=FileType.RBXMX), artifacts("upload"))

        assert committed.file_url.endswith("/file.rbxmx")

    @pytest.mark.asyncio
    async def test_progress_labels_in_order(self, files, make_asset):
        pipeline, _ = pipeline_for(files)
        labels = []

        await pipeline.upload(make_asset(), artifacts(), on_progress=labels.append)

        assert labels == [
            "Preparing storage",
            "Uploading thumbnail",
            "Uploading preview video",
            "Uploading asset file",
            "Writing metadata",
            "Publishing to registry",
            "Done",
        ]


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

class TestBootstrap:
    """Tests for creating the artifact root."""

    @pytest.mark.asyncio
    async def test_first_upload_creates_placeholder(self, files, make_asset):
        pipeline, _ = pipeline_for(files)

        await pipeline.upload(make_asset(), artifacts())

        assert (await files.read_file(f"{ARTIFACT_ROOT}/.gitkeep")).content == b""

    @pytest.mark.asyncio
    async def test_existing_root_is_left_alone(self, files, make_asset):
        await files.write_file(f"{ARTIFACT_ROOT}/EXC-OLD/file.rbxm", b"x", "seed")
        pipeline, _ = pipeline_for(files)

        await pipeline.upload(make_asset(), artifacts())

        names = [e.name for e in await files.list_folder(ARTIFACT_ROOT)]
        assert ".gitkeep" not in names

    @pytest.mark.asyncio
    async def test_concurrent_bootstrap_is_tolerated(self, make_asset):
        """Losing the race to create the placeholder is not an error."""

        class RacingClient(MockVersionedFileClient):
            async def list_folder(self, path):
                if path == ARTIFACT_ROOT:
                    return []
                return await super().list_folder(path)

        files = RacingClient()
        await files.write_file(f"{ARTIFACT_ROOT}/.gitkeep", b"", "other caller")
        pipeline, registry = pipeline_for(files)

        await pipeline.upload(make_asset(), artifacts())

        assert [r.id for r in await registry.get_all()] == ["EXC-ABC123-XYZ"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestUploadFailures:
    """Tests for partial failure and retry."""

    @pytest.mark.asyncio
    async def test_rejects_empty_artifact(self, files, make_asset):
        pipeline, _ = pipeline_for(files)
        empty = ArtifactSet(
            primary=ArtifactFile("sword.rbxm", b""),
            thumbnail=ArtifactFile("t.png", b"x"),
            video=ArtifactFile("v.mp4", b"x"),
        )

        with pytest.raises(ValueError, match="'file' is empty"):
            await pipeline.upload(make_asset(), empty)

        assert files.commit_messages == []

    @pytest.mark.asyncio
    async def test_failure_names_step_and_leaves_no_record(self, make_asset):
        files = FlakyClient(fail_on="preview")
        pipeline, registry = pipeline_for(files)

        with pytest.raises(PartialUploadError) as exc_info:
            await pipeline.upload(make_asset(), artifacts())

        error = exc_info.value
        assert error.step == "preview"
        assert error.asset_id == "EXC-ABC123-XYZ"
        assert isinstance(error.cause, WriteError)
        assert await registry.get_all() == []

    @pytest.mark.asyncio
    async def test_registry_conflicts_surface_as_registry_step(self, make_asset):
        class ConflictingRegistryClient(MockVersionedFileClient):
            async def write_file(self, path, content, message, sha=None):
                if path == REGISTRY_PATH:
                    raise ConflictError("busy")
                return await super().write_file(path, content, message, sha=sha)

        files = ConflictingRegistryClient()
        pipeline, _ = pipeline_for(files)

        with pytest.raises(PartialUploadError) as exc_info:
            await pipeline.upload(make_asset(), artifacts())

        assert exc_info.value.step == "registry"
        assert isinstance(exc_info.value.cause, ConflictError)

    @pytest.mark.asyncio
    async def test_retry_after_partial_failure_succeeds(self, make_asset):
        """Re-running an upload overwrites what the failed run left behind."""
        files = FlakyClient(fail_on="file.rbxm")
        pipeline, registry = pipeline_for(files)

        with pytest.raises(PartialUploadError):
            await pipeline.upload(make_asset(), artifacts())

        files.fail_on = None
        committed = await pipeline.upload(make_asset(), artifacts())

        assert committed.has_artifacts
        assert [r.id for r in await registry.get_all()] == ["EXC-ABC123-XYZ"]

    @pytest.mark.asyncio
    async def test_reupload_of_committed_asset_is_idempotent(self, files, make_asset):
        pipeline, registry = pipeline_for(files)

        first = await pipeline.upload(make_asset(), artifacts())
        second = await pipeline.upload(make_asset(), artifacts())

        assert first == second
        assert await registry.get_all() == [second]
