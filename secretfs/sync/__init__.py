"""
Synchronization subsystem.

Serializes filesystem mutations, snapshots the cache directory into chunk
secrets, commits them through one metadata secret and collects stale chunks.
"""

from secretfs.sync.committer import Committer, CommitterStats
from secretfs.sync.engine import SecretSync
from secretfs.sync.recoverer import SnapshotRecoverer
from secretfs.sync.secret_gc import SecretCollector
from secretfs.sync.secret_index import SecretIndex, SyncState
from secretfs.sync.uploader import SnapshotUploader

__all__ = [
    "Committer",
    "CommitterStats",
    "SecretCollector",
    "SecretIndex",
    "SecretSync",
    "SnapshotRecoverer",
    "SnapshotUploader",
    "SyncState",
]
