"""Wires the recoverer, uploader, collector and committer into one engine."""

import logging
from typing import Callable, Optional

from secretfs.archiver import Archiver, TarArchiver
from secretfs.config import SyncConfig
from secretfs.secret_store import SecretStore
from secretfs.sync.committer import Committer
from secretfs.sync.recoverer import SnapshotRecoverer
from secretfs.sync.secret_gc import SecretCollector
from secretfs.sync.secret_index import SyncState
from secretfs.sync.uploader import SnapshotUploader

logger = logging.getLogger(__name__)


class SecretSync:
    """
    Synchronization engine between the cache directory and the secret store.

    start() recovers the cache directory before the committer serves any
    work; stop() returns only after the committer loop has exited.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: SecretStore,
        archiver: Optional[Archiver] = None
    ):
        self.config = config
        self.store = store
        self.archiver = archiver or TarArchiver()
        self.state = SyncState()

        self.collector = SecretCollector(store, self.state)
        self.uploader = SnapshotUploader(config, store, self.archiver, self.state)
        self.recoverer = SnapshotRecoverer(config, store, self.archiver, self.state, self.collector)
        self.committer = Committer(self.uploader, self.collector, config.kube_api_timeout_seconds)

    async def start(self) -> None:
        logger.info(
            f"Starting sync [namespace={self.config.namespace}, "
            f"base_name={self.config.secret_base_name}, base_dir={self.config.base_dir}]"
        )
        await self.recoverer.recover()
        await self.committer.start()

    async def stop(self) -> None:
        await self.committer.stop()

    async def submit(self, label: str, commit: bool, operation: Callable[[], int]) -> int:
        return await self.committer.submit(label, commit, operation)

    def submit_blocking(self, label: str, commit: bool, operation: Callable[[], int]) -> int:
        return self.committer.submit_blocking(label, commit, operation)
