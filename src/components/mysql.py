"""
MySQL database component.

MySQL server pods carry readiness gates that the MySQL operator sets once
it has configured each instance. The operator can fail to finish that
work, leaving pods stuck waiting for their gates; the component's watchdog
restarts the operator pod once the stall has outlasted its grace period.
"""

import logging
from typing import Any, Dict, List, Optional

from cluster import Manifest
from components import mysql_operator
from components.base import ComponentContext
from components.manifest import ManifestComponent, service_manifest
from errors import NotFoundError
from readiness import AvailabilityObjects, NamespacedName, pod_waiting_for_readiness_gates
from watchdog import ReadinessWatchdog

logger = logging.getLogger(__name__)

COMPONENT_NAME = "mysql"
COMPONENT_NAMESPACE = "keycloak"
COMPONENT_JSON_NAME = "mysql"

# Label selecting the MySQL server pods
MYSQLD_POD_LABELS = {"component": "mysqld"}

READINESS_GATES = ["mysql.oracle.com/configured", "mysql.oracle.com/ready"]

READINESS_GATE_WATCH = "readiness-gates"


class MySQLComponent(ManifestComponent):
    """MySQL server instances managed by the MySQL operator."""

    def __init__(self):
        super().__init__(
            name=COMPONENT_NAME,
            namespace=COMPONENT_NAMESPACE,
            json_name=COMPONENT_JSON_NAME,
            image_name="mysql/community-server",
            image_tag="8.0.32",
            dependencies=[mysql_operator.COMPONENT_NAME],
            availability=AvailabilityObjects(
                statefulset_names=[NamespacedName(COMPONENT_NAMESPACE, COMPONENT_NAME)]
            ),
        )

    @property
    def config_schema(self) -> Optional[Dict[str, Any]]:
        return {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "replicas": {"type": "integer", "minimum": 1},
                "volumeSize": {"type": "string", "pattern": "^[0-9]+(Mi|Gi|Ti)$"},
                "image": {"type": "string"},
                "backup": {
                    "type": "object",
                    "required": ["secretName"],
                    "properties": {"secretName": {"type": "string"}},
                },
            },
        }

    def manifests(self, ctx: ComponentContext) -> List[Manifest]:
        config = self.config(ctx)
        pod_labels = {"app": COMPONENT_NAME, **MYSQLD_POD_LABELS}
        statefulset = {
            "apiVersion": "apps/v1",
            "kind": "StatefulSet",
            "metadata": {"name": COMPONENT_NAME, "namespace": COMPONENT_NAMESPACE},
            "spec": {
                "serviceName": COMPONENT_NAME,
                "replicas": config.get("replicas", 1),
                "selector": {"matchLabels": pod_labels},
                "template": {
                    "metadata": {"labels": pod_labels},
                    "spec": {
                        "readinessGates": [
                            {"conditionType": gate} for gate in READINESS_GATES
                        ],
                        "containers": [{"name": "mysql", "image": self.image(ctx)}],
                    },
                },
                "volumeClaimTemplates": [
                    {
                        "metadata": {"name": "datadir"},
                        "spec": {
                            "accessModes": ["ReadWriteOnce"],
                            "resources": {
                                "requests": {"storage": config.get("volumeSize", "8Gi")}
                            },
                        },
                    }
                ],
            },
        }
        return [statefulset, service_manifest(COMPONENT_NAME, COMPONENT_NAMESPACE, pod_labels, 3306)]

    async def _check_backup_secret(self, ctx: ComponentContext) -> None:
        backup = self.config(ctx).get("backup")
        if not backup:
            return
        secret = backup["secretName"]
        try:
            await ctx.client.get("Secret", COMPONENT_NAMESPACE, secret)
        except NotFoundError as e:
            raise RuntimeError(
                f"MySQL backup secret {COMPONENT_NAMESPACE}/{secret} does not exist"
            ) from e

    async def pre_install(self, ctx: ComponentContext) -> None:
        await self._check_backup_secret(ctx)

    async def pre_upgrade(self, ctx: ComponentContext) -> None:
        await self._check_backup_secret(ctx)

    async def pods_waiting_for_readiness_gates(self, ctx: ComponentContext) -> bool:
        """
        Detect MySQL server pods stuck waiting for their readiness gates.

        Pods that do not exist yet, or have not reported any status
        conditions, are still starting and do not count as stalled.
        """
        logger.debug("Checking if MySQL not ready due to pods waiting for readiness gates")
        pods = await ctx.client.list("Pod", COMPONENT_NAMESPACE, MYSQLD_POD_LABELS)
        if not pods:
            logger.debug(
                "No MySQL pods matching selector "
                f"component={MYSQLD_POD_LABELS['component']} yet"
            )
            return False
        for pod in pods:
            try:
                if pod_waiting_for_readiness_gates(pod):
                    return True
            except ValueError as e:
                logger.debug(f"Skipping MySQL pod still starting: {e}")
        return False

    async def restart_operator(self, ctx: ComponentContext) -> None:
        """Delete the MySQL operator pod so it is re-created."""
        logger.info(
            "Restarting the mysql-operator to see if it will repair MySQL pods "
            "stuck waiting for readiness gates"
        )
        pods = await ctx.client.list(
            "Pod", mysql_operator.COMPONENT_NAMESPACE, mysql_operator.OPERATOR_POD_LABELS
        )
        if len(pods) != 1:
            raise RuntimeError(
                "Failed restarting the mysql-operator to repair stuck MySQL pods: "
                f"expected 1 pod matching selector name={mysql_operator.COMPONENT_NAME}, "
                f"found {len(pods)}"
            )
        metadata = pods[0]["metadata"]
        await ctx.client.delete("Pod", metadata["namespace"], metadata["name"])

    def readiness_gate_watchdog(self, ctx: ComponentContext) -> ReadinessWatchdog:
        return ReadinessWatchdog(
            name=f"{ctx.resource.key}/{COMPONENT_NAME}/{READINESS_GATE_WATCH}",
            timer=ctx.stall_timer(READINESS_GATE_WATCH),
            stall_condition=lambda: self.pods_waiting_for_readiness_gates(ctx),
            remediation=lambda: self.restart_operator(ctx),
            clock=ctx.clock,
        )

    async def heal(self, ctx: ComponentContext) -> bool:
        if ctx.dry_run:
            return False
        return await self.readiness_gate_watchdog(ctx).poll()
