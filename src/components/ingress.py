"""
Ingress controller component (NGINX).
"""

from typing import Any, Dict, List, Optional

from cluster import Manifest
from components.base import ComponentContext
from components.manifest import ManifestComponent, deployment_manifest
from readiness import AvailabilityObjects, NamespacedName

COMPONENT_NAME = "ingress-controller"
COMPONENT_NAMESPACE = "ingress-nginx"
COMPONENT_JSON_NAME = "ingressNGINX"

CONTROLLER_DEPLOYMENT = "ingress-controller-ingress-nginx-controller"
DEFAULT_BACKEND_DEPLOYMENT = "ingress-controller-ingress-nginx-defaultbackend"


class IngressComponent(ManifestComponent):
    """NGINX ingress controller and its default backend."""

    def __init__(self):
        super().__init__(
            name=COMPONENT_NAME,
            namespace=COMPONENT_NAMESPACE,
            json_name=COMPONENT_JSON_NAME,
            image_name="ingress-nginx/controller",
            image_tag="1.7.1",
            availability=AvailabilityObjects(
                deployment_names=[
                    NamespacedName(COMPONENT_NAMESPACE, CONTROLLER_DEPLOYMENT),
                    NamespacedName(COMPONENT_NAMESPACE, DEFAULT_BACKEND_DEPLOYMENT),
                ]
            ),
        )

    @property
    def config_schema(self) -> Optional[Dict[str, Any]]:
        return {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "replicas": {"type": "integer", "minimum": 1},
                "type": {"type": "string", "enum": ["LoadBalancer", "NodePort"]},
                "image": {"type": "string"},
            },
        }

    def manifests(self, ctx: ComponentContext) -> List[Manifest]:
        config = self.config(ctx)
        service_type = config.get("type", "LoadBalancer")
        controller = deployment_manifest(
            CONTROLLER_DEPLOYMENT,
            COMPONENT_NAMESPACE,
            self.image(ctx),
            replicas=config.get("replicas", 1),
            args=["/nginx-ingress-controller", "--ingress-class=nginx"],
        )
        backend = deployment_manifest(
            DEFAULT_BACKEND_DEPLOYMENT,
            COMPONENT_NAMESPACE,
            "registry.k8s.io/defaultbackend-amd64:1.5",
        )
        service = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": CONTROLLER_DEPLOYMENT, "namespace": COMPONENT_NAMESPACE},
            "spec": {
                "type": service_type,
                "selector": {"app": CONTROLLER_DEPLOYMENT},
                "ports": [
                    {"name": "http", "port": 80, "targetPort": 80},
                    {"name": "https", "port": 443, "targetPort": 443},
                ],
            },
        }
        return [controller, backend, service]
