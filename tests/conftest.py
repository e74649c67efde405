"""Pytest configuration and fixtures."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from cluster import ClusterClient, Manifest, object_key
from components.base import Component, ComponentContext
from errors import NotFoundError
from resources import ManagedResource, PlatformSpec, ResourceStore
from watchdog import StallTimers


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeClusterClient(ClusterClient):
    """In-memory cluster keyed by (kind, namespace, name)."""

    def __init__(self):
        self.objects: Dict[Tuple[str, Optional[str], str], Manifest] = {}
        self.applied: List[Manifest] = []
        self.deleted: List[Tuple[str, str, str]] = []

    def add(self, manifest: Manifest) -> Manifest:
        self.objects[object_key(manifest)] = copy.deepcopy(manifest)
        return manifest

    async def get(self, kind: str, namespace: str, name: str) -> Manifest:
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, namespace, name)

    async def list(
        self, kind: str, namespace: str, labels: Optional[Dict[str, str]] = None
    ) -> List[Manifest]:
        result = []
        for (k, ns, _), obj in self.objects.items():
            if k != kind or ns != namespace:
                continue
            obj_labels = obj.get("metadata", {}).get("labels") or {}
            if all(obj_labels.get(lk) == lv for lk, lv in (labels or {}).items()):
                result.append(copy.deepcopy(obj))
        return result

    async def create_or_update(self, manifest: Manifest) -> Manifest:
        self.applied.append(copy.deepcopy(manifest))
        key = object_key(manifest)
        stored = copy.deepcopy(manifest)
        # Status is owned by the cluster, applies leave it alone
        if key in self.objects and "status" in self.objects[key]:
            stored["status"] = self.objects[key]["status"]
        self.objects[key] = stored
        return manifest

    async def delete(self, kind: str, namespace: str, name: str) -> None:
        if (kind, namespace, name) not in self.objects:
            raise NotFoundError(kind, namespace, name)
        del self.objects[(kind, namespace, name)]
        self.deleted.append((kind, namespace, name))


class FakeResourceStore(ResourceStore):
    """In-memory resource store recording every status write."""

    def __init__(self):
        self.resources: Dict[str, ManagedResource] = {}
        self.status_writes = 0
        self.fail_writes = False

    def add(self, resource: ManagedResource) -> ManagedResource:
        self.resources[resource.key] = resource.model_copy(deep=True)
        return resource

    async def get_resource(
        self, namespace: str, name: str
    ) -> Optional[ManagedResource]:
        resource = self.resources.get(f"{namespace}/{name}")
        return resource.model_copy(deep=True) if resource else None

    async def update_status(self, resource: ManagedResource) -> None:
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        if resource.key not in self.resources:
            raise NotFoundError("ManagedResource", resource.namespace, resource.name)
        stored = self.resources[resource.key]
        stored.status = resource.status.model_copy(deep=True)
        self.status_writes += 1


def ready_deployment(namespace: str, name: str, ready: int = 1) -> Manifest:
    """Deployment manifest reporting ``ready`` available replicas."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "status": {"readyReplicas": ready},
    }


def ready_statefulset(namespace: str, name: str, ready: int = 1) -> Manifest:
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "namespace": namespace},
        "status": {"readyReplicas": ready},
    }


@pytest.fixture
def clock():
    """A controllable UTC clock."""
    return FakeClock()


@pytest.fixture
def cluster():
    """An empty in-memory cluster."""
    return FakeClusterClient()


@pytest.fixture
def store():
    """An empty in-memory resource store."""
    return FakeResourceStore()


@pytest.fixture
def stall_timers():
    return StallTimers(timedelta(minutes=5))


@pytest.fixture
def sample_resource():
    """Sample managed resource targeting version 1.0.0."""
    return ManagedResource(
        name="platform",
        namespace="default",
        spec=PlatformSpec(version="1.0.0"),
    )


@pytest.fixture
def mock_pool():
    """Create a mock asyncpg pool."""
    pool = AsyncMock()
    pool.acquire = MagicMock()
    return pool


@pytest.fixture
def mock_connection():
    """Create a mock asyncpg connection."""
    conn = AsyncMock()
    return conn


def make_resource(**spec: Any) -> ManagedResource:
    """Build a managed resource from spec keyword arguments."""
    return ManagedResource(name="platform", spec=PlatformSpec(**spec))


class StubComponent(Component):
    """
    Scriptable component recording every hook it runs.

    Failures are injected by hook name ("is_installed", "pre", "operation",
    "ready", "heal", "post") through the ``failures`` dict.
    """

    def __init__(
        self,
        name: str,
        deps: Optional[List[str]] = None,
        schema: Optional[Dict[str, Any]] = None,
        installed: bool = True,
        ready: bool = True,
        calls: Optional[List[str]] = None,
    ):
        self._name = name
        self._deps = list(deps or [])
        self._schema = schema
        self.installed = installed
        self.ready = ready
        self.failures: Dict[str, Exception] = {}
        self.calls = calls if calls is not None else []

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return "test"

    @property
    def config_schema(self) -> Optional[Dict[str, Any]]:
        return self._schema

    def get_dependencies(self) -> List[str]:
        return list(self._deps)

    def _record(self, hook: str, ctx: ComponentContext) -> None:
        if hook in self.failures:
            raise self.failures[hook]
        self.calls.append(f"{self._name}:{hook}:{ctx.operation.value if ctx.operation else '-'}")

    async def is_installed(self, ctx: ComponentContext) -> bool:
        if "is_installed" in self.failures:
            raise self.failures["is_installed"]
        return self.installed

    async def pre_install(self, ctx: ComponentContext) -> None:
        self._record("pre", ctx)

    async def install(self, ctx: ComponentContext) -> None:
        self._record("operation", ctx)

    async def post_install(self, ctx: ComponentContext) -> None:
        self._record("post", ctx)

    async def pre_upgrade(self, ctx: ComponentContext) -> None:
        self._record("pre", ctx)

    async def upgrade(self, ctx: ComponentContext) -> None:
        self._record("operation", ctx)

    async def post_upgrade(self, ctx: ComponentContext) -> None:
        self._record("post", ctx)

    async def is_ready(self, ctx: ComponentContext) -> bool:
        if "ready" in self.failures:
            raise self.failures["ready"]
        return self.ready

    async def heal(self, ctx: ComponentContext) -> bool:
        self._record("heal", ctx)
        return False
