"""
Cluster Client - read/write access to workload objects on the cluster.

Objects are exchanged as plain manifest dictionaries (``apiVersion``,
``kind``, ``metadata``, ``spec``, ``status``) so that components never
depend on generated client model classes.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from kubernetes_asyncio import client, config
from kubernetes_asyncio.client.api_client import ApiClient
from kubernetes_asyncio.client.rest import ApiException

from errors import NotFoundError

logger = logging.getLogger(__name__)

Manifest = Dict[str, Any]


def object_key(manifest: Manifest) -> Tuple[str, Optional[str], str]:
    """Return ``(kind, namespace, name)`` for a manifest."""
    metadata = manifest.get("metadata") or {}
    return manifest["kind"], metadata.get("namespace"), metadata["name"]


def label_selector(labels: Dict[str, str]) -> str:
    """Format an equality-based label selector."""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


class ClusterClient(ABC):
    """Abstract interface to workload objects on a cluster."""

    @abstractmethod
    async def get(self, kind: str, namespace: str, name: str) -> Manifest:
        """
        Get a single object.

        Raises:
            NotFoundError: If the object does not exist.
        """
        pass

    @abstractmethod
    async def list(
        self, kind: str, namespace: str, labels: Optional[Dict[str, str]] = None
    ) -> List[Manifest]:
        """List objects of a kind in a namespace matching all ``labels``."""
        pass

    @abstractmethod
    async def create_or_update(self, manifest: Manifest) -> Manifest:
        """Create the object, or update it in place if it already exists."""
        pass

    @abstractmethod
    async def delete(self, kind: str, namespace: str, name: str) -> None:
        """
        Delete an object.

        Raises:
            NotFoundError: If the object does not exist.
        """
        pass

    async def exists(self, kind: str, namespace: str, name: str) -> bool:
        """Return True if the object exists."""
        try:
            await self.get(kind, namespace, name)
        except NotFoundError:
            return False
        return True


# kind -> (api class, method suffix)
_KINDS = {
    "Pod": (client.CoreV1Api, "pod"),
    "Secret": (client.CoreV1Api, "secret"),
    "ConfigMap": (client.CoreV1Api, "config_map"),
    "Service": (client.CoreV1Api, "service"),
    "ServiceAccount": (client.CoreV1Api, "service_account"),
    "Deployment": (client.AppsV1Api, "deployment"),
    "StatefulSet": (client.AppsV1Api, "stateful_set"),
    "DaemonSet": (client.AppsV1Api, "daemon_set"),
    "NetworkPolicy": (client.NetworkingV1Api, "network_policy"),
}


class KubernetesClusterClient(ClusterClient):
    """ClusterClient backed by the Kubernetes API server."""

    def __init__(self, api_client: Optional[ApiClient] = None):
        self._api_client = api_client

    async def connect(
        self, kubeconfig: Optional[str] = None, in_cluster: bool = False
    ) -> None:
        """Load credentials and create the API client."""
        if in_cluster:
            config.load_incluster_config()
        else:
            await config.load_kube_config(config_file=kubeconfig)
        self._api_client = ApiClient()
        logger.info(
            "Connected to Kubernetes API "
            f"({'in-cluster' if in_cluster else kubeconfig or 'default kubeconfig'})"
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None

    def _ensure_connected(self) -> ApiClient:
        if self._api_client is None:
            raise RuntimeError(
                "Cluster client not connected. Call connect() before performing operations."
            )
        return self._api_client

    def _resolve(self, kind: str) -> Tuple[Any, str]:
        if kind not in _KINDS:
            raise ValueError(
                f"Unsupported kind: {kind}. Supported kinds: {', '.join(_KINDS)}"
            )
        api_class, suffix = _KINDS[kind]
        return api_class(self._ensure_connected()), suffix

    def _to_dict(self, obj: Any) -> Manifest:
        return self._ensure_connected().sanitize_for_serialization(obj)

    async def get(self, kind: str, namespace: str, name: str) -> Manifest:
        api, suffix = self._resolve(kind)
        try:
            obj = await getattr(api, f"read_namespaced_{suffix}")(name, namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(kind, namespace, name) from e
            raise
        return self._to_dict(obj)

    async def list(
        self, kind: str, namespace: str, labels: Optional[Dict[str, str]] = None
    ) -> List[Manifest]:
        api, suffix = self._resolve(kind)
        kwargs = {}
        if labels:
            kwargs["label_selector"] = label_selector(labels)
        result = await getattr(api, f"list_namespaced_{suffix}")(namespace, **kwargs)
        return [self._to_dict(item) for item in result.items]

    async def create_or_update(self, manifest: Manifest) -> Manifest:
        kind, namespace, name = object_key(manifest)
        api, suffix = self._resolve(kind)
        try:
            await getattr(api, f"read_namespaced_{suffix}")(name, namespace)
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug(f"Creating {kind} {namespace}/{name}")
            obj = await getattr(api, f"create_namespaced_{suffix}")(
                namespace, manifest
            )
            return self._to_dict(obj)

        logger.debug(f"Updating {kind} {namespace}/{name}")
        obj = await getattr(api, f"patch_namespaced_{suffix}")(
            name, namespace, manifest
        )
        return self._to_dict(obj)

    async def delete(self, kind: str, namespace: str, name: str) -> None:
        api, suffix = self._resolve(kind)
        try:
            await getattr(api, f"delete_namespaced_{suffix}")(name, namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(kind, namespace, name) from e
            raise
        logger.info(f"Deleted {kind} {namespace}/{name}")
