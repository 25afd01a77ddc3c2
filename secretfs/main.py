"""Entry point for the secret filesystem sync service.
Recovers the cache directory, starts the committer and serves status endpoints.

This process exposes no filesystem of its own. A filesystem adapter mounting
at KUBE_SECRET_FS_MOUNT_POINT embeds SecretSync and drives it through
secretfs.cache_ops.CacheOperations; run standalone, the service restores the
cache directory and keeps its secrets collected.
"""

import asyncio
import contextlib
import shutil
import signal
import sys

import uvicorn

from common.constants import OWNER
from common.logging_config import setup_logging
from secretfs.config import SyncConfig, load_config
from secretfs.exceptions import ConfigError, SecretFSError
from secretfs.secret_store import KubeSecretStore
from secretfs.status_app import create_app
from secretfs.sync.engine import SecretSync

logger = setup_logging(OWNER)


class StatusServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to serve()."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


async def serve(config: SyncConfig) -> None:
    """
    Run the sync engine until SIGTERM or SIGINT.

    Args:
        config: Loaded configuration
    """
    store = KubeSecretStore.in_cluster(config.namespace)
    sync = SecretSync(config, store)

    try:
        await sync.start()

        server = StatusServer(uvicorn.Config(
            app=create_app(sync),
            host=config.status_host,
            port=config.status_port,
            log_level="debug" if config.debug else "warning",
        ))

        def shutdown(sig=None):
            logger.info(f"Received signal {sig}, shutting down...")
            server.should_exit = True

        if sys.platform != 'win32':
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, shutdown, sig)

        logger.info(f"Serving status on {config.status_host}:{config.status_port}")
        await server.serve()
    finally:
        # the committer loop must have exited before the process goes away
        await sync.stop()
        await store.close()
        logger.info("Sync stopped")


def main() -> None:
    """
    Bootstrap the sync service.

    mount_point is only reported here; it belongs to the adapter that embeds
    the engine and serves CacheOperations at that path.
    """
    try:
        config = load_config()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(2)

    setup_logging(OWNER, debug=config.debug)
    logger.debug(f"Options: base_dir={config.base_dir}, mount_point={config.mount_point}")

    if shutil.which("tar") is None:
        logger.error("tar binary not found on PATH")
        sys.exit(1)

    try:
        asyncio.run(serve(config))
    except SecretFSError as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
