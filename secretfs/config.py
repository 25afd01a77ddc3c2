"""Configuration settings for the secret filesystem, read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from common.constants import (
    DEFAULT_BASE_DIR,
    DEFAULT_KUBE_API_TIMEOUT_SECONDS,
    DEFAULT_MAX_BYTES_PER_SECRET,
    DEFAULT_MAX_SECRETS,
    DEFAULT_NAMESPACE,
    DEFAULT_SECRET_BASE_NAME,
    DEFAULT_STATUS_HOST,
    DEFAULT_STATUS_PORT,
    SERVICE_ACCOUNT_DIR,
)
from secretfs.exceptions import ConfigError

ENV_PREFIX = "KUBE_SECRET_FS_"


@dataclass(frozen=True)
class SyncConfig:
    """
    Settings consumed by the sync engine.

    Attributes:
        base_dir: Cache directory mirroring the filesystem content
        namespace: Namespace holding the secrets
        secret_base_name: Name of the metadata secret and prefix of chunk secrets
        max_bytes_per_secret: Maximum payload size of one chunk secret
        max_secrets: Maximum number of chunk secrets per generation
        kube_api_timeout_seconds: Deadline shared by all API calls of one cycle
        debug: Enable debug logging
        mount_point: Where the adapter mounts the filesystem
        status_host: Bind address of the status server
        status_port: Port of the status server
    """
    base_dir: str = DEFAULT_BASE_DIR
    namespace: str = DEFAULT_NAMESPACE
    secret_base_name: str = DEFAULT_SECRET_BASE_NAME
    max_bytes_per_secret: int = DEFAULT_MAX_BYTES_PER_SECRET
    max_secrets: int = DEFAULT_MAX_SECRETS
    kube_api_timeout_seconds: int = DEFAULT_KUBE_API_TIMEOUT_SECONDS
    debug: bool = False
    mount_point: Optional[str] = None
    status_host: str = DEFAULT_STATUS_HOST
    status_port: int = DEFAULT_STATUS_PORT


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must be greater than zero, got {value}")
    return value


def _default_namespace(service_account_dir: str = SERVICE_ACCOUNT_DIR) -> str:
    """Namespace of the pod's service account, or the default namespace outside a cluster."""
    namespace_file = Path(service_account_dir) / "namespace"
    try:
        return namespace_file.read_text().strip() or DEFAULT_NAMESPACE
    except OSError:
        return DEFAULT_NAMESPACE


def load_config(env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """
    Build a SyncConfig from KUBE_SECRET_FS_* environment variables.

    Args:
        env: Environment mapping (defaults to os.environ)

    Returns:
        Populated SyncConfig; the base directory is created if missing

    Raises:
        ConfigError: If a numeric setting is malformed or not positive
    """
    if env is None:
        env = os.environ

    base_dir = env.get(ENV_PREFIX + "BASE_DIR") or DEFAULT_BASE_DIR
    Path(base_dir).mkdir(parents=True, exist_ok=True)

    debug = env.get(ENV_PREFIX + "DEBUG", "").lower() in ("1", "true")

    return SyncConfig(
        base_dir=base_dir,
        namespace=env.get(ENV_PREFIX + "NAMESPACE") or _default_namespace(),
        secret_base_name=env.get(ENV_PREFIX + "SECRET_BASE_NAME") or DEFAULT_SECRET_BASE_NAME,
        max_bytes_per_secret=_positive_int(env, "MAX_BYTES_PER_SECRET", DEFAULT_MAX_BYTES_PER_SECRET),
        max_secrets=_positive_int(env, "MAX_SECRETS", DEFAULT_MAX_SECRETS),
        kube_api_timeout_seconds=_positive_int(
            env, "KUBE_API_TIMEOUT_SECONDS", DEFAULT_KUBE_API_TIMEOUT_SECONDS
        ),
        debug=debug,
        mount_point=env.get(ENV_PREFIX + "MOUNT_POINT"),
        status_host=env.get(ENV_PREFIX + "STATUS_HOST") or DEFAULT_STATUS_HOST,
        status_port=_positive_int(env, "STATUS_PORT", DEFAULT_STATUS_PORT),
    )
