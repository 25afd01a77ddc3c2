"""Cold-start reconstruction of the cache directory from the secret store."""

import asyncio
import logging
from typing import Dict, Optional

from common.constants import (
    LABEL_GENERATION,
    LABEL_VERSION,
    NO_GENERATION,
    OWNER,
)
from common.types import ChunkRecord
from secretfs.archiver import Archiver
from secretfs.config import SyncConfig
from secretfs.exceptions import ArchiverError, CommunicationError
from secretfs.secret_store import SecretStore
from secretfs.sync.secret_gc import SecretCollector
from secretfs.sync.secret_index import SyncState
from secretfs.utils import clean_directory

logger = logging.getLogger(__name__)


class SnapshotRecoverer:
    """
    Restores the latest committed generation into an empty cache directory.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: SecretStore,
        archiver: Archiver,
        state: SyncState,
        collector: SecretCollector
    ):
        self.config = config
        self.store = store
        self.archiver = archiver
        self.state = state
        self.collector = collector

    async def recover(self) -> None:
        """
        Clear the cache directory, restore the committed generation and collect the rest.

        Every remote call of the pass shares one deadline. Extraction
        failures are logged and the pass continues with whatever was
        restored.

        Raises:
            CommunicationError: If the secret store cannot be read in time
        """
        clean_directory(self.config.base_dir)

        try:
            async with asyncio.timeout(self.config.kube_api_timeout_seconds):
                generation = await self._restore()
                await self.collector.collect(generation or NO_GENERATION)
        except TimeoutError:
            raise CommunicationError(
                f"recovery did not finish within {self.config.kube_api_timeout_seconds}s"
            )

        self.state.generation = generation
        self.state.recovered = True
        logger.info(f"Recovered generation {generation or NO_GENERATION} into {self.config.base_dir}")

    async def _restore(self) -> Optional[str]:
        base_name = self.config.secret_base_name

        metadata = await self.store.get_secret(base_name)
        md_generation = None
        md_version = None
        if metadata is None:
            logger.debug("metadata secret is empty")
        else:
            self.state.metadata_exists = True
            md_version = metadata.labels.get(LABEL_VERSION)
            md_generation = metadata.labels.get(LABEL_GENERATION)
            logger.debug(f"metadata secret version: {md_version}")
            logger.debug(f"metadata secret generation: {md_generation}")

        secrets = await self.store.list_secrets(label_selector=f"owner={OWNER},parent={base_name}")

        chunks: Dict[int, ChunkRecord] = {}
        for secret in secrets:
            self.state.index.add(secret.name, secret.generation)

            if md_generation is None or md_version is None:
                continue
            if secret.labels.get(LABEL_GENERATION) != md_generation or secret.version != md_version:
                continue

            order = secret.order
            payload = secret.payload
            if order is None or payload is None:
                logger.warning(f"Skipping malformed chunk secret {secret.name}")
                continue
            if order in chunks:
                logger.warning(f"Duplicate order {order} in secret {secret.name}, keeping {chunks[order].name}")
                continue
            chunks[order] = ChunkRecord(name=secret.name, order=order, data=payload)

        if chunks:
            ordered = [chunks[order] for order in sorted(chunks)]
            logger.debug(f"restoring {len(ordered)} chunks of generation {md_generation}")
            try:
                await self.archiver.extract(self.config.base_dir, (chunk.data for chunk in ordered))
            except ArchiverError as e:
                logger.error(f"tar error: {e.stderr or e}")

        return md_generation
