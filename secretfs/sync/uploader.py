"""Turns the cache directory into chunk secrets plus one metadata secret."""

import asyncio
import logging
from typing import List

from common.constants import (
    CHUNK_DATA_KEY,
    LABEL_GENERATION,
    LABEL_ORDER,
    LABEL_OWNER,
    LABEL_PARENT,
    LABEL_VERSION,
    OWNER,
    PROTOCOL_VERSION,
)
from common.types import SecretObject
from secretfs.archiver import Archiver, ArchiveStream
from secretfs.config import SyncConfig
from secretfs.exceptions import CapacityError, CommunicationError
from secretfs.secret_store import SecretStore
from secretfs.sync.secret_index import SyncState
from secretfs.utils import chunk_secret_name, new_generation

logger = logging.getLogger(__name__)


class SnapshotUploader:
    """
    Runs one write cycle: archive, chunk, create chunk secrets, promote.

    Must only be called from the committer loop, so the cache directory is
    not mutated while it is archived.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: SecretStore,
        archiver: Archiver,
        state: SyncState
    ):
        self.config = config
        self.store = store
        self.archiver = archiver
        self.state = state

    async def upload(self) -> str:
        """
        Write a new generation of the cache directory and make it authoritative.

        Returns:
            The newly committed generation

        Raises:
            CapacityError: If the archive needs more than max_secrets chunks
            ArchiverError: If tar fails
            CommunicationError: If creating a chunk or metadata secret fails
        """
        generation = new_generation()
        logger.debug(f"write generation: {generation}")

        tasks: List[asyncio.Task] = []
        stream = await self.archiver.start_compress(self.config.base_dir)
        try:
            await self._emit_chunks(stream, generation, tasks)
            await stream.wait()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await stream.abort()
            raise
        except Exception:
            await stream.abort()
            raise
        finally:
            # chunk creates already issued are always joined, even on abort
            results = await asyncio.gather(*tasks, return_exceptions=True)

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise CommunicationError(
                f"failed to create {len(failures)} of {len(tasks)} chunk secrets: {failures[0]}"
            ) from failures[0]

        await self._promote(generation)
        logger.info(f"Committed generation {generation} in {len(tasks)} secrets")
        return generation

    async def _emit_chunks(
        self,
        stream: ArchiveStream,
        generation: str,
        tasks: List[asyncio.Task]
    ) -> None:
        max_bytes = self.config.max_bytes_per_secret
        order = 0
        while True:
            data = await stream.read_chunk(max_bytes)
            if not data:
                return

            if order >= self.config.max_secrets:
                limit = max_bytes * self.config.max_secrets
                logger.error(f"unable to write; filesystem is larger than {limit} bytes")
                raise CapacityError(
                    f"snapshot needs more than {self.config.max_secrets} secrets "
                    f"of {max_bytes} bytes"
                )

            tasks.append(asyncio.create_task(self._create_chunk(generation, order, data)))
            order += 1

            if len(data) < max_bytes:
                return

    async def _create_chunk(self, generation: str, order: int, data: bytes) -> None:
        name = chunk_secret_name(self.config.secret_base_name, generation, order)
        secret = SecretObject(
            name=name,
            labels={
                LABEL_GENERATION: generation,
                LABEL_ORDER: str(order),
                LABEL_OWNER: OWNER,
                LABEL_PARENT: self.config.secret_base_name,
                LABEL_VERSION: PROTOCOL_VERSION,
            },
            data={CHUNK_DATA_KEY: data},
        )
        await self.store.create_secret(secret)
        logger.debug(f"wrote secret: {name} size: {len(data)} bytes")
        self.state.index.add(name, generation)

    async def _promote(self, generation: str) -> None:
        metadata = SecretObject(
            name=self.config.secret_base_name,
            labels={
                LABEL_GENERATION: generation,
                LABEL_OWNER: OWNER,
                LABEL_VERSION: PROTOCOL_VERSION,
            },
        )

        if self.state.metadata_exists:
            await self.store.replace_secret(metadata)
        else:
            await self.store.create_secret(metadata)
            self.state.metadata_exists = True

        self.state.generation = generation
