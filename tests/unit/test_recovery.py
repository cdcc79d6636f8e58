"""Unit tests for rebuilding registry records from metadata copies."""

import json

import pytest

from excalibur.core.registry.errors import PartialUploadError, WriteError
from excalibur.core.registry.recovery import load_artifact_metadata, rebuild_registry
from excalibur.core.registry.store import RegistryStore
from excalibur.core.registry.upload import ArtifactFile, ArtifactSet, AssetUploadPipeline
from excalibur.infrastructure.storage.client import MockVersionedFileClient

REGISTRY_PATH = "Marketplace/registry.json"
ARTIFACT_ROOT = "Marketplace/Assets"

ARTIFACTS = ArtifactSet(
    primary=ArtifactFile("sword.rbxm", b"<roblox/>"),
    thumbnail=ArtifactFile("thumb.png", b"png"),
    video=ArtifactFile("clip.mp4", b"mp4"),
)


async def write_metadata(files, asset) -> None:
    path = f"{ARTIFACT_ROOT}/{asset.id}/metadata.json"
    await files.write_file(path, json.dumps(asset.to_dict()).encode("utf-8"), "seed")


class TestLoadArtifactMetadata:
    """Tests for scanning asset folders."""

    @pytest.mark.asyncio
    async def test_skips_unreadable_and_mismatched_folders(self, files, make_asset):
        await write_metadata(files, make_asset("EXC-GOOD"))
        await files.write_file(f"{ARTIFACT_ROOT}/EXC-BROKEN/metadata.json", b"{oops", "seed")
        await files.write_file(f"{ARTIFACT_ROOT}/EXC-BARE/file.rbxm", b"x", "seed")
        await files.write_file(
            f"{ARTIFACT_ROOT}/EXC-MOVED/metadata.json",
            json.dumps(make_asset("EXC-ELSEWHERE").to_dict()).encode("utf-8"),
            "seed",
        )
        await files.write_file(f"{ARTIFACT_ROOT}/.gitkeep", b"", "seed")

        found = await load_artifact_metadata(files, ARTIFACT_ROOT)

        assert [a.id for a in found] == ["EXC-GOOD"]


class TestRebuildRegistry:
    """Tests for restoring missing records."""

    @pytest.mark.asyncio
    async def test_restores_only_missing_records(self, files, registry, make_asset):
        existing = make_asset("EXC-KEEP", title="Current")
        await registry.upsert(existing)
        await write_metadata(files, make_asset("EXC-KEEP", title="Stale copy"))
        await write_metadata(files, make_asset("EXC-OLD", timestamp=1))
        await write_metadata(files, make_asset("EXC-NEW", timestamp=2))

        recovered = await rebuild_registry(files, registry, ARTIFACT_ROOT)

        assert recovered == ["EXC-NEW", "EXC-OLD"]
        records = await registry.get_all()
        assert [r.id for r in records] == ["EXC-KEEP", "EXC-NEW", "EXC-OLD"]
        assert records[0].title == "Current"

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write(self, files, registry, make_asset):
        await write_metadata(files, make_asset("EXC-LOST"))
        writes = len(files.commit_messages)

        pending = await rebuild_registry(files, registry, ARTIFACT_ROOT, dry_run=True)

        assert pending == ["EXC-LOST"]
        assert len(files.commit_messages) == writes
        assert await registry.get_all() == []

    @pytest.mark.asyncio
    async def test_nothing_to_recover(self, files, registry):
        assert await rebuild_registry(files, registry, ARTIFACT_ROOT) == []
        assert files.commit_messages == []

    @pytest.mark.asyncio
    async def test_recovers_upload_that_failed_at_registry_step(self, make_asset):
        class RegistryDownClient(MockVersionedFileClient):
            registry_down = True

            async def write_file(self, path, content, message, sha=None):
                if self.registry_down and path == REGISTRY_PATH:
                    raise WriteError("registry unavailable", status_code=503)
                return await super().write_file(path, content, message, sha=sha)

        files = RegistryDownClient()
        registry = RegistryStore(files, REGISTRY_PATH, backoff_seconds=0)
        pipeline = AssetUploadPipeline(files, registry, ARTIFACT_ROOT)

        with pytest.raises(PartialUploadError) as exc_info:
            await pipeline.upload(make_asset(), ARTIFACTS)
        assert exc_info.value.step == "registry"

        files.registry_down = False
        recovered = await rebuild_registry(files, registry, ARTIFACT_ROOT)

        assert recovered == ["EXC-ABC123-XYZ"]
        assert (await registry.get("EXC-ABC123-XYZ")).has_artifacts
