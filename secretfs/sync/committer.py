"""
Single-writer operation queue.

Every mutating filesystem call passes through the committer loop, which runs
the local operation, batches the callers that need a commit and drives one
upload cycle per batch.
"""

import asyncio
import errno as errno_codes
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from common.types import WorkItem
from secretfs.exceptions import SecretFSError
from secretfs.sync.secret_gc import SecretCollector
from secretfs.sync.uploader import SnapshotUploader

logger = logging.getLogger(__name__)


@dataclass
class CommitterStats:
    """Counters exposed by the status endpoint."""
    operations: int = 0
    batches: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    last_result: Optional[int] = None
    last_generation: Optional[str] = None
    cycle_in_flight: bool = False


class Committer:
    """
    Serializes mutations of the cache directory and commits them in batches.

    All callers batched together receive the outcome of the same upload
    cycle. Nothing is retried; the next committing operation starts a fresh
    cycle.
    """

    def __init__(
        self,
        uploader: SnapshotUploader,
        collector: SecretCollector,
        timeout_seconds: float
    ):
        """
        Initialize the committer.

        Args:
            uploader: Runs one write cycle per batch
            collector: Deletes superseded secrets after a successful cycle
            timeout_seconds: Deadline shared by upload, promotion and GC of one cycle
        """
        self.uploader = uploader
        self.collector = collector
        self.timeout_seconds = timeout_seconds
        self.stats = CommitterStats()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._idle = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopping

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Start the committer loop on the running event loop."""
        if self._task is not None:
            logger.warning("Committer already running")
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._stopping = False
        self._task = asyncio.create_task(self._run())
        logger.info(f"Committer started [timeout={self.timeout_seconds}s]")

    async def stop(self) -> None:
        """
        Stop accepting work and wait until the loop has exited.

        An idle loop is cancelled while waiting; a cycle in flight is allowed
        to finish. Work still queued is answered with ECANCELED.
        """
        if self._task is None:
            return

        self._stopping = True
        if self._idle:
            self._task.cancel()

        try:
            await self._task
        except asyncio.CancelledError:
            pass

        self._task = None
        logger.info("Committer stopped")

    async def submit(self, label: str, commit: bool, operation: Callable[[], int]) -> int:
        """
        Queue an operation and wait for its result.

        Args:
            label: Description used in diagnostics
            commit: Whether a successful result must be committed before replying
            operation: Local operation returning an errno (0 on success)

        Returns:
            0 on success, otherwise an errno value
        """
        if not self.running:
            logger.warning(f"{label} rejected: committer is not running")
            return errno_codes.ECANCELED

        item = WorkItem(
            label=label,
            commit=commit,
            operation=operation,
            reply=self._loop.create_future()
        )
        self._queue.put_nowait(item)
        logger.debug(f"{label} queued")

        result = await item.reply
        logger.debug(f"{label} result: {result}")
        return result

    def submit_blocking(self, label: str, commit: bool, operation: Callable[[], int]) -> int:
        """
        Thread-safe variant of submit for adapter worker threads.

        Blocks the calling thread until the result is available. Must not be
        called from the committer's own event loop thread.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning(f"{label} rejected: committer is not running")
            return errno_codes.ECANCELED
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            raise RuntimeError("submit_blocking called from the committer event loop thread")

        try:
            future = asyncio.run_coroutine_threadsafe(self.submit(label, commit, operation), loop)
        except RuntimeError:
            return errno_codes.ECANCELED
        return future.result()

    async def _run(self) -> None:
        """Main loop: wait for work, drain the queue, commit the batch."""
        batch: List[WorkItem] = []
        item: Optional[WorkItem] = None
        try:
            while not self._stopping:
                batch = []

                try:
                    self._idle = True
                    item = await self._queue.get()
                except asyncio.CancelledError:
                    logger.debug("terminate received")
                    break
                finally:
                    self._idle = False

                self._execute(item, batch)
                while True:
                    try:
                        item = self._queue.get_nowait()
                    except asyncio.QueueEmpty:
                        break
                    self._execute(item, batch)

                if not batch:
                    continue

                await self._commit(batch)
        except Exception as e:
            logger.error(f"Committer loop failed: {type(e).__name__}: {e}", exc_info=True)
            for pending in ([item] if item is not None else []) + batch:
                self._reply(pending, errno_codes.EIO)
        finally:
            for pending in batch:
                self._reply(pending, errno_codes.ECANCELED)
            self._cancel_queued()

    def _execute(self, item: WorkItem, batch: List[WorkItem]) -> None:
        logger.debug(f"{item.label} running")
        self.stats.operations += 1
        result = self._run_operation(item)

        if result != 0 or not item.commit:
            self._reply(item, result)
            return

        batch.append(item)

    @staticmethod
    def _run_operation(item: WorkItem) -> int:
        try:
            result = item.operation()
            return 0 if result is None else int(result)
        except OSError as e:
            return e.errno or errno_codes.EIO
        except Exception as e:
            logger.error(f"{item.label} raised {type(e).__name__}: {e}", exc_info=True)
            return errno_codes.EIO

    async def _commit(self, batch: List[WorkItem]) -> None:
        self.stats.batches += 1
        self.stats.cycle_in_flight = True
        deadline = self._loop.time() + self.timeout_seconds
        generation = None

        try:
            async with asyncio.timeout_at(deadline):
                generation = await self.uploader.upload()
            result = 0
        except SecretFSError as e:
            result = e.errno
            logger.error(f"commit of {len(batch)} operations failed: {e}")
        except TimeoutError:
            result = errno_codes.ECOMM
            logger.error(f"commit of {len(batch)} operations timed out after {self.timeout_seconds}s")
        except asyncio.CancelledError:
            for item in batch:
                self._reply(item, errno_codes.ECANCELED)
            raise
        except Exception as e:
            result = errno_codes.ECOMM
            logger.error(f"commit of {len(batch)} operations failed: {e}", exc_info=True)
        finally:
            self.stats.cycle_in_flight = False

        self.stats.last_result = result
        if result == 0:
            self.stats.cycles_succeeded += 1
            self.stats.last_generation = generation
        else:
            self.stats.cycles_failed += 1

        for item in batch:
            self._reply(item, result)

        if generation is None:
            return

        try:
            async with asyncio.timeout_at(deadline):
                await self.collector.collect(generation)
        except TimeoutError:
            logger.warning(f"garbage collection for generation {generation} timed out")
        except Exception as e:
            logger.error(f"garbage collection for generation {generation} failed: {e}", exc_info=True)

    @staticmethod
    def _reply(item: WorkItem, result: int) -> None:
        if not item.reply.done():
            item.reply.set_result(result)

    def _cancel_queued(self) -> None:
        cancelled = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._reply(item, errno_codes.ECANCELED)
            cancelled += 1
        if cancelled:
            logger.warning(f"Cancelled {cancelled} queued operations on shutdown")
