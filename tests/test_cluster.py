"""Unit tests for cluster.py - Kubernetes cluster client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client.rest import ApiException

import cluster as cluster_module
from cluster import KubernetesClusterClient, label_selector, object_key
from errors import NotFoundError

DEPLOYMENT = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "web", "namespace": "apps"},
}


class TestHelpers:
    def test_object_key(self):
        assert object_key(DEPLOYMENT) == ("Deployment", "apps", "web")

    def test_label_selector_sorted(self):
        assert label_selector({"name": "op", "app": "x"}) == "app=x,name=op"


@pytest.fixture
def api():
    """Mock typed API instance returned for every supported kind."""
    instance = MagicMock()
    instance.read_namespaced_deployment = AsyncMock(return_value=DEPLOYMENT)
    instance.create_namespaced_deployment = AsyncMock(return_value=DEPLOYMENT)
    instance.patch_namespaced_deployment = AsyncMock(return_value=DEPLOYMENT)
    instance.delete_namespaced_deployment = AsyncMock()
    instance.list_namespaced_deployment = AsyncMock(
        return_value=MagicMock(items=[DEPLOYMENT])
    )
    return instance


@pytest.fixture
def k8s(api, monkeypatch):
    monkeypatch.setitem(
        cluster_module._KINDS, "Deployment", (MagicMock(return_value=api), "deployment")
    )
    api_client = MagicMock()
    api_client.sanitize_for_serialization = MagicMock(side_effect=lambda obj: obj)
    api_client.close = AsyncMock()
    return KubernetesClusterClient(api_client)


@pytest.mark.asyncio
class TestKubernetesClusterClient:
    """Tests for KubernetesClusterClient."""

    async def test_requires_connection(self):
        client = KubernetesClusterClient()
        with pytest.raises(RuntimeError, match="not connected"):
            await client.get("Deployment", "apps", "web")

    async def test_unsupported_kind(self, k8s):
        with pytest.raises(ValueError, match="Unsupported kind: CronJob"):
            await k8s.get("CronJob", "apps", "nightly")

    async def test_get(self, k8s, api):
        assert await k8s.get("Deployment", "apps", "web") == DEPLOYMENT
        api.read_namespaced_deployment.assert_awaited_once_with("web", "apps")

    async def test_get_not_found(self, k8s, api):
        api.read_namespaced_deployment.side_effect = ApiException(status=404)
        with pytest.raises(NotFoundError, match="Deployment apps/web not found"):
            await k8s.get("Deployment", "apps", "web")

    async def test_get_other_error_propagates(self, k8s, api):
        api.read_namespaced_deployment.side_effect = ApiException(status=500)
        with pytest.raises(ApiException):
            await k8s.get("Deployment", "apps", "web")

    async def test_exists(self, k8s, api):
        assert await k8s.exists("Deployment", "apps", "web") is True
        api.read_namespaced_deployment.side_effect = ApiException(status=404)
        assert await k8s.exists("Deployment", "apps", "web") is False

    async def test_list_with_labels(self, k8s, api):
        result = await k8s.list("Deployment", "apps", {"app": "web"})
        assert result == [DEPLOYMENT]
        api.list_namespaced_deployment.assert_awaited_once_with(
            "apps", label_selector="app=web"
        )

    async def test_create_when_missing(self, k8s, api):
        api.read_namespaced_deployment.side_effect = ApiException(status=404)

        await k8s.create_or_update(DEPLOYMENT)

        api.create_namespaced_deployment.assert_awaited_once_with("apps", DEPLOYMENT)
        api.patch_namespaced_deployment.assert_not_called()

    async def test_update_when_present(self, k8s, api):
        await k8s.create_or_update(DEPLOYMENT)

        api.patch_namespaced_deployment.assert_awaited_once_with("web", "apps", DEPLOYMENT)
        api.create_namespaced_deployment.assert_not_called()

    async def test_delete_not_found(self, k8s, api):
        api.delete_namespaced_deployment.side_effect = ApiException(status=404)
        with pytest.raises(NotFoundError):
            await k8s.delete("Deployment", "apps", "web")

    async def test_close(self, k8s):
        api_client = k8s._api_client
        await k8s.close()
        api_client.close.assert_awaited_once()
        assert k8s._api_client is None
