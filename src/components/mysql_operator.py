"""
MySQL operator component.

The operator manages the MySQL server pods and sets their readiness gates.
"""

from typing import List

from cluster import Manifest
from components.base import ComponentContext
from components.manifest import ManifestComponent, deployment_manifest
from readiness import AvailabilityObjects, NamespacedName

COMPONENT_NAME = "mysql-operator"
COMPONENT_NAMESPACE = "mysql-operator"
COMPONENT_JSON_NAME = "mySQLOperator"

# Label carried by the operator pod
OPERATOR_POD_LABELS = {"name": COMPONENT_NAME}


class MySQLOperatorComponent(ManifestComponent):
    """Kubernetes operator for MySQL InnoDB clusters."""

    def __init__(self):
        super().__init__(
            name=COMPONENT_NAME,
            namespace=COMPONENT_NAMESPACE,
            json_name=COMPONENT_JSON_NAME,
            image_name="mysql/community-operator",
            image_tag="8.0.32-2.0.8",
            availability=AvailabilityObjects(
                deployment_names=[NamespacedName(COMPONENT_NAMESPACE, COMPONENT_NAME)]
            ),
        )

    def manifests(self, ctx: ComponentContext) -> List[Manifest]:
        return [
            deployment_manifest(
                COMPONENT_NAME,
                COMPONENT_NAMESPACE,
                self.image(ctx),
                labels=OPERATOR_POD_LABELS,
                args=["mysqlsh", "--log-level=@INFO", "--pym", "mysqloperator", "operator"],
            )
        ]
