"""
Secret garbage collection.

Deletes chunk secrets that belong to any generation other than the one
currently committed.
"""

import asyncio
import logging

from secretfs.secret_store import SecretStore
from secretfs.sync.secret_index import SyncState

logger = logging.getLogger(__name__)


class SecretCollector:
    """
    Sweeps the secret index and deletes superseded chunk secrets.
    """

    def __init__(self, store: SecretStore, state: SyncState):
        """
        Initialize the collector.

        Args:
            store: Secret store to delete from
            state: Shared sync state holding the secret index
        """
        self.store = store
        self.state = state

    async def collect(self, current_generation: str) -> int:
        """
        Delete every tracked secret whose generation differs from current_generation.

        Deletes run concurrently. An entry leaves the index only after its
        delete is confirmed; a secret that is already gone counts as deleted.
        Failed deletes are logged and stay in the index for the next sweep.

        Args:
            current_generation: Generation that must be kept

        Returns:
            Number of secrets removed from the index
        """
        stale = self.state.index.stale(current_generation)
        if not stale:
            logger.debug(f"No stale secrets for generation {current_generation}")
            return 0

        logger.debug(f"Collecting {len(stale)} stale secrets, keeping generation {current_generation}")

        results = await asyncio.gather(
            *(self._delete(name) for name, _ in stale),
            return_exceptions=True
        )

        deleted = 0
        for (name, generation), result in zip(stale, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Failed to delete secret {name} (generation {generation}): {result}")
                continue
            deleted += 1

        logger.info(f"Collected {deleted}/{len(stale)} stale secrets")
        return deleted

    async def _delete(self, name: str) -> None:
        existed = await self.store.delete_secret(name)
        self.state.index.remove(name)
        if existed:
            logger.debug(f"deleted secret: {name}")
