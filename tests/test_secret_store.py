"""Unit tests for KubeSecretStore."""

import base64
import json

import httpx
import pytest

from common.types import SecretObject
from secretfs.exceptions import CommunicationError, SecretNotFoundError, SecretStoreError
from secretfs.secret_store import KubeSecretStore, manifest_to_secret, secret_to_manifest

COLLECTION = "/api/v1/namespaces/test/secrets"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_store(handler, token_path=None):
    """Create a KubeSecretStore with a mocked HTTP transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://kube.test")
    return KubeSecretStore("test", "https://kube.test", token_path=token_path, client=client)


class TestManifests:
    """Test conversion between SecretObject and v1 Secret manifests."""

    def test_chunk_manifest(self):
        secret = SecretObject(
            name="fs-b1-00000",
            labels={"generation": "b1", "order": "0"},
            data={"data.tar.gz": b"\x1f\x8b\x08"},
        )

        manifest = secret_to_manifest(secret)

        assert manifest["apiVersion"] == "v1"
        assert manifest["kind"] == "Secret"
        assert manifest["metadata"] == {"name": "fs-b1-00000", "labels": {"generation": "b1", "order": "0"}}
        assert manifest["data"] == {"data.tar.gz": _b64(b"\x1f\x8b\x08")}

    def test_metadata_manifest_has_no_data(self):
        manifest = secret_to_manifest(SecretObject(name="fs", labels={"generation": "b1"}))

        assert "data" not in manifest

    def test_manifest_without_labels_or_data(self):
        secret = manifest_to_secret({"metadata": {"name": "bare"}})

        assert secret.name == "bare"
        assert secret.labels == {}
        assert secret.data == {}
        assert secret.generation == "unknown"


class TestRequests:
    """Test the REST calls issued for each store operation."""

    @pytest.mark.asyncio
    async def test_list_with_selectors(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"items": [{
                "metadata": {"name": "fs-b1-00000", "labels": {"generation": "b1", "order": "0"}},
                "data": {"data.tar.gz": _b64(b"payload")},
            }]})

        store = make_store(handler)
        secrets = await store.list_secrets(label_selector="owner=kube-secret-fs,parent=fs")

        assert seen[0].method == "GET"
        assert seen[0].url.path == COLLECTION
        assert seen[0].url.params["labelSelector"] == "owner=kube-secret-fs,parent=fs"
        assert "fieldSelector" not in seen[0].url.params
        assert secrets[0].name == "fs-b1-00000"
        assert secrets[0].order == 0
        assert secrets[0].payload == b"payload"
        await store.close()

    @pytest.mark.asyncio
    async def test_list_empty(self):
        store = make_store(lambda request: httpx.Response(200, json={"items": None}))

        assert await store.list_secrets() == []
        await store.close()

    @pytest.mark.asyncio
    async def test_get_secret_uses_field_selector(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"items": []})

        store = make_store(handler)

        assert await store.get_secret("fs") is None
        assert seen[0].url.params["fieldSelector"] == "metadata.name=fs"
        await store.close()

    @pytest.mark.asyncio
    async def test_create_posts_manifest(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(201, json={})

        store = make_store(handler)
        await store.create_secret(SecretObject(name="fs-b1-00000", labels={"order": "0"}, data={"data.tar.gz": b"ab"}))

        method, path, body = seen[0]
        assert (method, path) == ("POST", COLLECTION)
        assert body["metadata"]["name"] == "fs-b1-00000"
        assert body["data"]["data.tar.gz"] == _b64(b"ab")
        await store.close()

    @pytest.mark.asyncio
    async def test_replace_puts_to_named_path(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={})

        store = make_store(handler)
        await store.replace_secret(SecretObject(name="fs", labels={"generation": "b2"}))

        assert seen == [("PUT", f"{COLLECTION}/fs")]
        await store.close()

    @pytest.mark.asyncio
    async def test_token_sent_as_bearer(self, tmp_path):
        token = tmp_path / "token"
        token.write_text("first\n")
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"items": []})

        store = make_store(handler, token_path=str(token))
        await store.list_secrets()
        token.write_text("rotated")
        await store.list_secrets()

        # cached until the API server rejects it
        assert seen == ["Bearer first", "Bearer first"]
        await store.close()

    @pytest.mark.asyncio
    async def test_token_reloaded_after_unauthorized(self, tmp_path):
        token = tmp_path / "token"
        token.write_text("first")
        seen = []

        def handler(request):
            auth = request.headers.get("Authorization")
            seen.append(auth)
            if auth != "Bearer rotated":
                return httpx.Response(401, json={"message": "Unauthorized"})
            return httpx.Response(200, json={"items": []})

        store = make_store(handler, token_path=str(token))
        token.write_text("rotated")
        store._token = "first"

        assert await store.list_secrets() == []
        assert seen == ["Bearer first", "Bearer rotated"]
        await store.close()

    @pytest.mark.asyncio
    async def test_unauthorized_twice_is_an_error(self, tmp_path):
        token = tmp_path / "token"
        token.write_text("revoked")
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"message": "Unauthorized"})

        store = make_store(handler, token_path=str(token))

        with pytest.raises(SecretStoreError) as exc_info:
            await store.list_secrets()

        assert exc_info.value.status_code == 401
        assert len(calls) == 2
        await store.close()


class TestDelete:
    """Test delete semantics."""

    @pytest.mark.asyncio
    async def test_delete_existing(self):
        store = make_store(lambda request: httpx.Response(200, json={"status": "Success"}))

        assert await store.delete_secret("fs-b1-00000") is True
        await store.close()

    @pytest.mark.asyncio
    async def test_delete_absent_is_not_an_error(self):
        store = make_store(lambda request: httpx.Response(404, json={"message": "not found"}))

        assert await store.delete_secret("fs-b1-00000") is False
        await store.close()

    @pytest.mark.asyncio
    async def test_delete_server_error(self):
        store = make_store(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(SecretStoreError) as exc_info:
            await store.delete_secret("fs-b1-00000")

        assert exc_info.value.status_code == 500
        await store.close()


class TestErrors:
    """Test translation of API failures into store exceptions."""

    @pytest.mark.asyncio
    async def test_create_conflict(self):
        store = make_store(lambda request: httpx.Response(409, json={"message": "already exists"}))

        with pytest.raises(SecretStoreError) as exc_info:
            await store.create_secret(SecretObject(name="fs-b1-00000"))

        assert exc_info.value.status_code == 409
        assert "already exists" in str(exc_info.value)
        assert isinstance(exc_info.value, CommunicationError)
        await store.close()

    @pytest.mark.asyncio
    async def test_replace_missing(self):
        store = make_store(lambda request: httpx.Response(404, json={"message": "not found"}))

        with pytest.raises(SecretNotFoundError):
            await store.replace_secret(SecretObject(name="fs"))
        await store.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = make_store(handler)

        with pytest.raises(SecretStoreError) as exc_info:
            await store.list_secrets()

        assert "ConnectError" in str(exc_info.value)
        await store.close()

    @pytest.mark.asyncio
    async def test_unreadable_token(self, tmp_path):
        store = make_store(lambda request: httpx.Response(200, json={}), token_path=str(tmp_path / "missing"))

        with pytest.raises(SecretStoreError):
            await store.list_secrets()
        await store.close()


class TestInCluster:
    """Test construction from the pod environment."""

    def test_requires_service_host(self, monkeypatch):
        monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)

        with pytest.raises(SecretStoreError):
            KubeSecretStore.in_cluster("test")

    @pytest.mark.asyncio
    async def test_builds_from_service_account(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.96.0.1")
        monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "6443")
        (tmp_path / "token").write_text("t")

        store = KubeSecretStore.in_cluster("test", service_account_dir=str(tmp_path))

        assert store.client.base_url.host == "10.96.0.1"
        assert store.client.base_url.port == 6443
        assert store.token_path == str(tmp_path / "token")
        await store.close()
