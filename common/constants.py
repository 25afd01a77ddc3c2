"""Project-wide constants (wire labels, protocol version, config defaults)."""

import os
import tempfile

PROTOCOL_VERSION: str = "0.1"
OWNER: str = "kube-secret-fs"

# Secret labels
LABEL_GENERATION: str = "generation"
LABEL_ORDER: str = "order"
LABEL_OWNER: str = "owner"
LABEL_PARENT: str = "parent"
LABEL_VERSION: str = "version"

CHUNK_DATA_KEY: str = "data.tar.gz"
CHUNK_ORDER_WIDTH: int = 5

# Generation recorded for listed secrets that carry no generation label
UNKNOWN_GENERATION: str = "unknown"
# Generation collected against when no metadata secret exists
NO_GENERATION: str = "none"

DEFAULT_BASE_DIR: str = os.path.join(tempfile.gettempdir(), "kube-secret-fs")
DEFAULT_SECRET_BASE_NAME: str = "kube-secret-fs"
DEFAULT_NAMESPACE: str = "default"
DEFAULT_MAX_BYTES_PER_SECRET: int = 512 * 1024
DEFAULT_MAX_SECRETS: int = 20
DEFAULT_KUBE_API_TIMEOUT_SECONDS: int = 10

DEFAULT_STATUS_HOST: str = "0.0.0.0"
DEFAULT_STATUS_PORT: int = 8080

SERVICE_ACCOUNT_DIR: str = "/var/run/secrets/kubernetes.io/serviceaccount"
