"""
Manifest Component - shared implementation for components delivered as a
fixed set of workload manifests.

Install and upgrade both apply the component's manifests with
create-or-update, so repeated calls converge instead of duplicating
objects. Readiness is derived from the component's availability objects.
"""

import logging
from typing import Any, Dict, List, Optional

from cluster import Manifest
from components.base import Component, ComponentContext
from conditions import Operation
from readiness import AvailabilityObjects, objects_are_ready

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
VERSION_LABEL = "app.kubernetes.io/version"
MANAGED_BY = "platform-operator"


def deployment_manifest(
    name: str,
    namespace: str,
    image: str,
    replicas: int = 1,
    labels: Optional[Dict[str, str]] = None,
    args: Optional[List[str]] = None,
) -> Manifest:
    """Build a single-container Deployment manifest."""
    pod_labels = {"app": name, **(labels or {})}
    container: Dict[str, Any] = {"name": name, "image": image}
    if args:
        container["args"] = list(args)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(pod_labels)},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": {"app": name}},
            "template": {
                "metadata": {"labels": pod_labels},
                "spec": {"containers": [container]},
            },
        },
    }


def service_manifest(
    name: str, namespace: str, selector: Dict[str, str], port: int
) -> Manifest:
    """Build a ClusterIP Service manifest."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "selector": dict(selector),
            "ports": [{"name": "http", "port": port, "targetPort": port}],
        },
    }


class ManifestComponent(Component):
    """Component whose workloads are a list of manifests applied in order."""

    def __init__(
        self,
        name: str,
        namespace: str,
        image_name: str,
        image_tag: str,
        json_name: Optional[str] = None,
        dependencies: Optional[List[str]] = None,
        availability: Optional[AvailabilityObjects] = None,
        enabled_by_default: bool = True,
        min_replicas: int = 1,
    ):
        self._name = name
        self._namespace = namespace
        self._json_name = json_name or name
        self._dependencies = list(dependencies or [])
        self._enabled_by_default = enabled_by_default
        self.image_name = image_name
        self.image_tag = image_tag
        self.availability = availability or AvailabilityObjects()
        self.min_replicas = min_replicas

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def json_name(self) -> str:
        return self._json_name

    @property
    def enabled_by_default(self) -> bool:
        return self._enabled_by_default

    def get_dependencies(self) -> List[str]:
        return list(self._dependencies)

    def config(self, ctx: ComponentContext) -> Dict[str, Any]:
        """Return this component's configuration block."""
        return ctx.resource.component_config(self.json_name)

    def image(self, ctx: ComponentContext) -> str:
        """Return the container image, honouring an ``image`` override."""
        override = self.config(ctx).get("image")
        if override:
            return override
        repository = self.image_name
        if ctx.image_registry:
            repository = f"{ctx.image_registry}/{repository}"
        return f"{repository}:{self.image_tag}"

    def manifests(self, ctx: ComponentContext) -> List[Manifest]:
        """Return the manifests making up this component, in apply order."""
        return []

    async def apply_manifests(self, ctx: ComponentContext) -> None:
        """Create or update every manifest of this component."""
        for manifest in self.manifests(ctx):
            metadata = manifest.setdefault("metadata", {})
            labels = metadata.setdefault("labels", {})
            labels[MANAGED_BY_LABEL] = MANAGED_BY
            labels[VERSION_LABEL] = ctx.target_version
            metadata.setdefault("namespace", self.namespace)
            if ctx.dry_run:
                logger.info(
                    f"Dry run: skipping apply of {manifest['kind']} "
                    f"{metadata['namespace']}/{metadata['name']}"
                )
                continue
            await ctx.client.create_or_update(manifest)

    async def is_installed(self, ctx: ComponentContext) -> bool:
        """
        Report whether this component takes part in the current pass.

        A disabled component never does. During an install an enabled
        component always does; during an upgrade it does only if its
        availability objects already exist on the cluster.
        """
        if not self.is_enabled(ctx.resource):
            return False
        if ctx.operation is Operation.INSTALL or not self.availability:
            return True
        for nsn in self.availability.deployment_names:
            if await ctx.client.exists("Deployment", nsn.namespace, nsn.name):
                return True
        for nsn in self.availability.statefulset_names:
            if await ctx.client.exists("StatefulSet", nsn.namespace, nsn.name):
                return True
        return False

    async def install(self, ctx: ComponentContext) -> None:
        await self.apply_manifests(ctx)

    async def upgrade(self, ctx: ComponentContext) -> None:
        await self.apply_manifests(ctx)

    async def is_ready(self, ctx: ComponentContext) -> bool:
        if ctx.dry_run:
            return True
        return await objects_are_ready(
            ctx.client, self.availability, self.min_replicas, ctx.describe()
        )
