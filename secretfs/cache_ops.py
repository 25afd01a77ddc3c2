"""
Passthrough filesystem operations against the cache directory.

This is the surface a filesystem adapter calls. Reads go straight to the
cache directory; mutations are routed through the committer so they land
on a snapshot boundary. Every operation returns 0 or an errno value.
"""

import errno
import logging
import os
import stat
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from secretfs.sync.engine import SecretSync

logger = logging.getLogger(__name__)


def _errno_of(fn: Callable[[], object]) -> int:
    try:
        fn()
    except OSError as e:
        return e.errno or errno.EIO
    return 0


class CacheOperations:
    """
    Syscall layer over the cache directory.

    Paths are absolute within the mounted filesystem ('/a/b') and are
    resolved under the cache root; paths escaping the root are rejected
    with EACCES.
    """

    def __init__(self, root: str, sync: SecretSync):
        self.root = os.path.realpath(root)
        self.sync = sync

    def _local(self, path: str) -> str:
        full = os.path.normpath(os.path.join(self.root, path.lstrip("/")))
        if full != self.root and not full.startswith(self.root + os.sep):
            logger.warning(f"rejected path outside cache root: {path}")
            raise PermissionError(errno.EACCES, "path escapes cache root", path)
        return full

    def _commit(self, label: str, fn: Callable[[], object]) -> int:
        return self.sync.submit_blocking(label, True, lambda: _errno_of(fn))

    # read-only operations, served directly

    def getattr(self, path: str) -> Tuple[int, Optional[os.stat_result]]:
        try:
            return 0, os.lstat(self._local(path))
        except OSError as e:
            return e.errno, None

    def access(self, path: str, mode: int) -> int:
        try:
            local = self._local(path)
        except OSError as e:
            return e.errno
        return 0 if os.access(local, mode) else errno.EACCES

    def readdir(self, path: str) -> Tuple[int, List[str]]:
        try:
            return 0, sorted(os.listdir(self._local(path)))
        except OSError as e:
            return e.errno, []

    def readlink(self, path: str) -> Tuple[int, Optional[str]]:
        try:
            return 0, os.readlink(self._local(path))
        except OSError as e:
            return e.errno, None

    def read(self, path: str, size: int, offset: int) -> Tuple[int, bytes]:
        try:
            with open(self._local(path), "rb") as f:
                f.seek(offset)
                return 0, f.read(size)
        except OSError as e:
            return e.errno, b""

    def statfs(self, path: str) -> Tuple[int, Optional[os.statvfs_result]]:
        try:
            return 0, os.statvfs(self._local(path))
        except OSError as e:
            return e.errno, None

    # mutating operations, committed through the queue

    def mkdir(self, path: str, mode: int = 0o755) -> int:
        return self._commit(f"mkdir {path}", lambda: os.mkdir(self._local(path), mode))

    def rmdir(self, path: str) -> int:
        return self._commit(f"rmdir {path}", lambda: os.rmdir(self._local(path)))

    def unlink(self, path: str) -> int:
        return self._commit(f"unlink {path}", lambda: os.unlink(self._local(path)))

    def rename(self, old: str, new: str) -> int:
        return self._commit(
            f"rename {old} -> {new}",
            lambda: os.rename(self._local(old), self._local(new))
        )

    def symlink(self, target: str, path: str) -> int:
        return self._commit(f"symlink {path} -> {target}", lambda: os.symlink(target, self._local(path)))

    def link(self, existing: str, path: str) -> int:
        return self._commit(
            f"link {path} -> {existing}",
            lambda: os.link(self._local(existing), self._local(path))
        )

    def chmod(self, path: str, mode: int) -> int:
        return self._commit(f"chmod {path} {oct(mode)}", lambda: os.chmod(self._local(path), mode))

    def chown(self, path: str, uid: int, gid: int) -> int:
        return self._commit(
            f"chown {path} {uid}:{gid}",
            lambda: os.lchown(self._local(path), uid, gid)
        )

    def truncate(self, path: str, length: int) -> int:
        return self._commit(f"truncate {path} {length}", lambda: os.truncate(self._local(path), length))

    def utime(self, path: str, times: Optional[Tuple[float, float]] = None) -> int:
        return self._commit(f"utime {path}", lambda: os.utime(self._local(path), times))

    def create(self, path: str, mode: int = 0o644) -> int:
        def op():
            fd = os.open(self._local(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, mode)
            os.close(fd)

        return self._commit(f"create {path}", op)

    def mknod(self, path: str, mode: int) -> int:
        def op():
            local = self._local(path)
            if stat.S_ISFIFO(mode):
                os.mkfifo(local, stat.S_IMODE(mode))
            elif stat.S_ISREG(mode) or stat.S_IFMT(mode) == 0:
                fd = os.open(local, os.O_CREAT | os.O_EXCL | os.O_WRONLY, stat.S_IMODE(mode))
                os.close(fd)
            else:
                raise OSError(errno.EPERM, "unsupported node type", path)

        return self._commit(f"mknod {path} {oct(mode)}", op)

    def write(self, path: str, data: bytes, offset: int = 0) -> int:
        def op():
            fd = os.open(self._local(path), os.O_WRONLY)
            try:
                os.pwrite(fd, data, offset)
            finally:
                os.close(fd)

        return self._commit(f"write {path} {len(data)}@{offset}", op)

    def write_file(self, path: str, data: bytes) -> int:
        """Replace the whole content of a file."""
        def op():
            Path(self._local(path)).write_bytes(data)

        return self._commit(f"write_file {path} {len(data)}", op)
