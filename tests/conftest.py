"""Shared fixtures for the unit tests."""

import pytest

from excalibur.core.registry.models import Asset, Category, FileType
from excalibur.core.registry.store import RegistryStore
from excalibur.infrastructure.storage.client import MockVersionedFileClient

REGISTRY_PATH = "Marketplace/registry.json"


def build_asset(asset_id: str = "EXC-ABC123-XYZ", **overrides) -> Asset:
    """An Asset with sensible defaults; override any field by keyword."""
    fields = {
        "id": asset_id,
        "user_id": "u1",
        "author_name": "Builder",
        "title": "Sword",
        "category": Category.MODEL,
        "file_type": FileType.RBXM,
        "timestamp": 1_700_000_000_000,
    }
    fields.update(overrides)
    return Asset(**fields)


@pytest.fixture
def make_asset():
    return build_asset


@pytest.fixture
def files() -> MockVersionedFileClient:
    return MockVersionedFileClient()


@pytest.fixture
def registry(files) -> RegistryStore:
    return RegistryStore(files, REGISTRY_PATH, max_attempts=5, backoff_seconds=0)
