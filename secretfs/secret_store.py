"""Secret store abstraction and its Kubernetes REST implementation."""

import asyncio
import base64
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from common.constants import SERVICE_ACCOUNT_DIR
from common.types import SecretObject
from secretfs.exceptions import SecretNotFoundError, SecretStoreError

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """
    Labeled object store holding the chunk and metadata secrets of one namespace.

    Deadlines are applied by callers around whole interactions, not per call.
    """

    @abstractmethod
    async def list_secrets(
        self,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None
    ) -> List[SecretObject]:
        """List secrets matching the given selectors."""

    @abstractmethod
    async def create_secret(self, secret: SecretObject) -> None:
        """Create a new secret."""

    @abstractmethod
    async def replace_secret(self, secret: SecretObject) -> None:
        """Replace an existing secret with the same name."""

    @abstractmethod
    async def delete_secret(self, name: str) -> bool:
        """
        Delete a secret by name.

        Returns:
            True if it was deleted, False if it did not exist
        """

    async def get_secret(self, name: str) -> Optional[SecretObject]:
        """Fetch a secret by exact name, or None if absent."""
        items = await self.list_secrets(field_selector=f"metadata.name={name}")
        return items[0] if items else None

    async def close(self) -> None:
        """Release client resources."""


def secret_to_manifest(secret: SecretObject) -> Dict[str, Any]:
    """
    Convert a SecretObject into a v1 Secret manifest.

    Payload bytes are base64 encoded; an empty payload map is omitted.
    """
    manifest: Dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": secret.name,
            "labels": dict(secret.labels),
        },
    }
    if secret.data:
        manifest["data"] = {
            key: base64.b64encode(value).decode("ascii")
            for key, value in secret.data.items()
        }
    return manifest


def manifest_to_secret(manifest: Dict[str, Any]) -> SecretObject:
    """Convert a v1 Secret manifest returned by the API into a SecretObject."""
    metadata = manifest.get("metadata") or {}
    data = manifest.get("data") or {}
    return SecretObject(
        name=metadata.get("name", ""),
        labels=dict(metadata.get("labels") or {}),
        data={key: base64.b64decode(value) for key, value in data.items()},
    )


class KubeSecretStore(SecretStore):
    """
    Secret store backed by the Kubernetes core/v1 Secrets API.
    """

    def __init__(
        self,
        namespace: str,
        base_url: str,
        token_path: Optional[str] = None,
        verify: Union[bool, str] = True,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the store.

        Args:
            namespace: Namespace holding the secrets
            base_url: API server URL (e.g., 'https://10.96.0.1:443')
            token_path: File with the bearer token, cached and re-read after a 401
            verify: CA bundle path or TLS verification flag
            client: Pre-built client (used by tests to inject a transport)
        """
        self.namespace = namespace
        self.token_path = token_path
        self._token: Optional[str] = None
        self.client = client or httpx.AsyncClient(base_url=base_url, verify=verify)
        self._collection = f"/api/v1/namespaces/{namespace}/secrets"
        logger.info(f"Initialized KubeSecretStore [base_url={base_url}, namespace={namespace}]")

    @classmethod
    def in_cluster(
        cls,
        namespace: str,
        service_account_dir: str = SERVICE_ACCOUNT_DIR
    ) -> "KubeSecretStore":
        """
        Build a store from the pod's service account.

        Raises:
            SecretStoreError: If not running inside a cluster
        """
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise SecretStoreError("KUBERNETES_SERVICE_HOST is not set; not running in a cluster")
        if ":" in host:
            host = f"[{host}]"

        sa_dir = Path(service_account_dir)
        ca_path = sa_dir / "ca.crt"
        return cls(
            namespace=namespace,
            base_url=f"https://{host}:{port}",
            token_path=str(sa_dir / "token"),
            verify=str(ca_path) if ca_path.exists() else True,
        )

    def _read_token(self) -> str:
        try:
            return Path(self.token_path).read_text().strip()
        except OSError as e:
            raise SecretStoreError(f"Cannot read service account token: {e}")

    async def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token_path:
            if self._token is None:
                self._token = await asyncio.to_thread(self._read_token)
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = await self._headers()
        try:
            return await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise SecretStoreError(f"{method} {path} failed: {type(e).__name__}: {e}")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._send(method, path, **kwargs)
        if response.status_code == 401 and self.token_path:
            # projected tokens rotate; reload once and retry
            logger.info("Unauthorized response, reloading service account token")
            self._token = None
            response = await self._send(method, path, **kwargs)
        logger.debug(f"{method} {path} status={response.status_code}")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("message", response.text)
        except ValueError:
            detail = response.text
        message = f"{action} failed with status {response.status_code}: {detail}"
        if response.status_code == 404:
            raise SecretNotFoundError(message, status_code=404)
        raise SecretStoreError(message, status_code=response.status_code)

    async def list_secrets(
        self,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None
    ) -> List[SecretObject]:
        params = {}
        if label_selector:
            params["labelSelector"] = label_selector
        if field_selector:
            params["fieldSelector"] = field_selector

        response = await self._request("GET", self._collection, params=params)
        self._raise_for_status(response, "list secrets")
        items = response.json().get("items") or []
        return [manifest_to_secret(item) for item in items]

    async def create_secret(self, secret: SecretObject) -> None:
        response = await self._request("POST", self._collection, json=secret_to_manifest(secret))
        self._raise_for_status(response, f"create secret {secret.name}")

    async def replace_secret(self, secret: SecretObject) -> None:
        response = await self._request(
            "PUT",
            f"{self._collection}/{secret.name}",
            json=secret_to_manifest(secret)
        )
        self._raise_for_status(response, f"replace secret {secret.name}")

    async def delete_secret(self, name: str) -> bool:
        response = await self._request("DELETE", f"{self._collection}/{name}")
        if response.status_code == 404:
            logger.debug(f"secret {name} already absent")
            return False
        self._raise_for_status(response, f"delete secret {name}")
        return True

    async def close(self) -> None:
        await self.client.aclose()
