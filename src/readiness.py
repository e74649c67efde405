"""
Readiness checks for the workload objects backing a component.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from cluster import ClusterClient, Manifest
from errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamespacedName:
    """Namespace and name of a cluster object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class AvailabilityObjects:
    """Workload objects that must be available for a component to be ready."""

    deployment_names: List[NamespacedName] = field(default_factory=list)
    statefulset_names: List[NamespacedName] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.deployment_names or self.statefulset_names)


def ready_replicas(obj: Manifest) -> int:
    """Return the ready replica count reported in an object's status."""
    status = obj.get("status") or {}
    return status.get("readyReplicas") or 0


async def _objects_are_ready(
    client: ClusterClient,
    kind: str,
    names: List[NamespacedName],
    min_replicas: int,
    prefix: str,
) -> bool:
    for nsn in names:
        try:
            obj = await client.get(kind, nsn.namespace, nsn.name)
        except NotFoundError:
            logger.info(f"{prefix} is waiting for {kind} {nsn} to exist")
            return False
        count = ready_replicas(obj)
        if count < min_replicas:
            logger.info(
                f"{prefix} is waiting for {kind} {nsn} replicas to be "
                f"{min_replicas}. Current available replicas is {count}"
            )
            return False
    return True


async def deployments_are_ready(
    client: ClusterClient,
    names: List[NamespacedName],
    min_replicas: int = 1,
    prefix: str = "",
) -> bool:
    """Return True if every Deployment has at least ``min_replicas`` ready."""
    return await _objects_are_ready(client, "Deployment", names, min_replicas, prefix)


async def statefulsets_are_ready(
    client: ClusterClient,
    names: List[NamespacedName],
    min_replicas: int = 1,
    prefix: str = "",
) -> bool:
    """Return True if every StatefulSet has at least ``min_replicas`` ready."""
    return await _objects_are_ready(
        client, "StatefulSet", names, min_replicas, prefix
    )


async def objects_are_ready(
    client: ClusterClient,
    objects: AvailabilityObjects,
    min_replicas: int = 1,
    prefix: str = "",
) -> bool:
    """Return True if all availability objects are ready."""
    return await deployments_are_ready(
        client, objects.deployment_names, min_replicas, prefix
    ) and await statefulsets_are_ready(
        client, objects.statefulset_names, min_replicas, prefix
    )


def pod_waiting_for_readiness_gates(pod: Manifest) -> bool:
    """
    Return True if a pod declares readiness gates that are not all True.

    Raises:
        ValueError: If the pod reports no status conditions at all.
    """
    metadata = pod.get("metadata") or {}
    conditions = (pod.get("status") or {}).get("conditions") or []
    if not conditions:
        raise ValueError(
            "no status conditions found for pod "
            f"{metadata.get('namespace')}/{metadata.get('name')}"
        )
    gates = (pod.get("spec") or {}).get("readinessGates") or []
    true_types = {c.get("type") for c in conditions if c.get("status") == "True"}
    met = sum(1 for gate in gates if gate.get("conditionType") in true_types)
    return met != len(gates)
