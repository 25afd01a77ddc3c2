"""Shared pytest fixtures for all tests."""

import pytest

from secretfs.config import SyncConfig
from secretfs.sync.secret_gc import SecretCollector
from secretfs.sync.secret_index import SyncState
from tests.fakes import BytesArchiver, InMemorySecretStore


@pytest.fixture
def cache_dir(tmp_path):
    """
    Create the cache directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to an empty cache directory
    """
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def sync_config(cache_dir):
    """Config with tiny chunks: 10 bytes per secret, at most 3 secrets."""
    return SyncConfig(
        base_dir=str(cache_dir),
        namespace="test",
        secret_base_name="fs",
        max_bytes_per_secret=10,
        max_secrets=3,
        kube_api_timeout_seconds=5,
    )


@pytest.fixture
def store():
    return InMemorySecretStore()


@pytest.fixture
def archiver():
    return BytesArchiver()


@pytest.fixture
def state():
    return SyncState()


@pytest.fixture
def collector(store, state):
    return SecretCollector(store, state)
