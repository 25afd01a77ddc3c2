"""Round trip of a real directory tree through tar and the secret store."""

import asyncio
import os
import shutil

import pytest

from secretfs.cache_ops import CacheOperations
from secretfs.config import SyncConfig
from secretfs.sync.engine import SecretSync
from tests.fakes import InMemorySecretStore

pytestmark = pytest.mark.skipif(shutil.which("tar") is None, reason="tar binary not available")


def _tree(root):
    entries = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            rel = os.path.relpath(full, root)
            if os.path.islink(full):
                entries[rel] = ("link", os.readlink(full))
            elif os.path.isdir(full):
                entries[rel] = ("dir", None)
            else:
                with open(full, "rb") as f:
                    entries[rel] = ("file", f.read())
    return entries


def _config(base_dir):
    return SyncConfig(
        base_dir=str(base_dir),
        namespace="test",
        secret_base_name="fs",
        max_bytes_per_secret=256,
        max_secrets=50,
        kube_api_timeout_seconds=10,
    )


@pytest.mark.asyncio
async def test_round_trip(tmp_path):
    """Test upload, clear and recover reproduces the directory."""
    store = InMemorySecretStore()
    source = tmp_path / "node-a"
    source.mkdir()
    sync = SecretSync(_config(source), store)
    await sync.start()
    ops = CacheOperations(str(source), sync)

    assert await asyncio.to_thread(ops.mkdir, "/etc") == 0
    assert await asyncio.to_thread(ops.write_file, "/etc/app.conf", b"key=value\n") == 0
    assert await asyncio.to_thread(ops.write_file, "/blob", os.urandom(2000)) == 0
    assert await asyncio.to_thread(ops.symlink, "etc/app.conf", "/conf") == 0
    await sync.stop()

    assert len(store.chunks(sync.state.generation)) > 1
    expected = _tree(source)

    target = tmp_path / "node-b"
    target.mkdir()
    (target / "stale").write_text("removed by recovery")
    restored = SecretSync(_config(target), store)
    await restored.start()
    await restored.stop()

    assert _tree(target) == expected
    assert restored.state.generation == sync.state.generation
