"""Streams a directory tree through `tar` to produce or consume a gzip archive."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from secretfs.exceptions import ArchiverError

logger = logging.getLogger(__name__)


class ArchiveStream(ABC):
    """Byte stream of a compressed archive being produced."""

    @abstractmethod
    async def read_chunk(self, size: int) -> bytes:
        """
        Read up to size bytes, filling the buffer unless the stream ends.

        Returns:
            Exactly size bytes, fewer at end of stream, b'' once exhausted
        """

    @abstractmethod
    async def wait(self) -> None:
        """
        Wait for the producer to finish.

        Raises:
            ArchiverError: If the producer failed
        """

    @abstractmethod
    async def abort(self) -> None:
        """Stop the producer without waiting for the rest of the stream."""


class Archiver(ABC):
    """Compress/extract collaborator used by the uploader and recoverer."""

    @abstractmethod
    async def start_compress(self, root: str) -> ArchiveStream:
        """Start producing a compressed archive of root, recursively."""

    @abstractmethod
    async def extract(self, root: str, payloads: Iterable[bytes]) -> None:
        """
        Decompress the concatenation of payloads into root.

        Raises:
            ArchiverError: If extraction failed
        """


class TarProcessStream(ArchiveStream):
    """Stdout of a running `tar -cz` child process."""

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process
        self._stderr_task = asyncio.create_task(process.stderr.read())

    async def read_chunk(self, size: int) -> bytes:
        try:
            return await self.process.stdout.readexactly(size)
        except asyncio.IncompleteReadError as e:
            return e.partial

    async def wait(self) -> None:
        returncode = await self.process.wait()
        stderr = (await self._stderr_task).decode("utf-8", errors="replace")
        if returncode != 0:
            logger.error(f"tar error: {stderr}")
            raise ArchiverError(
                f"tar exited with status {returncode}",
                returncode=returncode,
                stderr=stderr
            )

    async def abort(self) -> None:
        if self.process.returncode is None:
            self.process.kill()
        await self.process.wait()
        await self._stderr_task


class TarArchiver(Archiver):
    """
    Archiver running the system `tar` binary with gzip compression.
    """

    def __init__(self, tar_binary: str = "tar"):
        self.tar_binary = tar_binary

    async def start_compress(self, root: str) -> ArchiveStream:
        try:
            process = await asyncio.create_subprocess_exec(
                self.tar_binary, "-czf", "-", ".",
                cwd=root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ArchiverError(f"cannot start {self.tar_binary}: {e}")
        return TarProcessStream(process)

    async def extract(self, root: str, payloads: Iterable[bytes]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.tar_binary, "-xzf", "-",
                cwd=root,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ArchiverError(f"cannot start {self.tar_binary}: {e}")

        stderr_task = asyncio.create_task(process.stderr.read())
        write_error: Optional[Exception] = None
        try:
            try:
                for payload in payloads:
                    process.stdin.write(payload)
                    await process.stdin.drain()
                process.stdin.close()
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError) as e:
                # tar exited early; its status and stderr explain why
                write_error = e

            returncode = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace")
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            await process.wait()
            stderr_task.cancel()
            raise

        if returncode != 0:
            raise ArchiverError(
                f"tar exited with status {returncode}",
                returncode=returncode,
                stderr=stderr
            )
        if write_error is not None:
            raise ArchiverError(f"tar closed its input early: {write_error}", returncode=returncode)
