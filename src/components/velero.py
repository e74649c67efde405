"""
Velero backup agent component.
"""

from typing import List

from cluster import Manifest
from components.base import ComponentContext
from components.manifest import ManifestComponent, deployment_manifest
from readiness import AvailabilityObjects, NamespacedName

COMPONENT_NAME = "velero"
COMPONENT_NAMESPACE = "velero"
COMPONENT_JSON_NAME = "velero"


class VeleroComponent(ManifestComponent):
    def __init__(self):
        super().__init__(
            name=COMPONENT_NAME,
            namespace=COMPONENT_NAMESPACE,
            json_name=COMPONENT_JSON_NAME,
            image_name="velero/velero",
            image_tag="v1.9.1",
            enabled_by_default=False,
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
                args=["/velero", "server", "--uploader-type=restic"],
            )
        ]
