"""
Thanos metrics backend component.
"""

from typing import Any, Dict, List, Optional

from cluster import Manifest
from components import ingress
from components.base import ComponentContext
from components.manifest import ManifestComponent, deployment_manifest, service_manifest
from errors import NotFoundError
from readiness import AvailabilityObjects, NamespacedName

COMPONENT_NAME = "thanos"
COMPONENT_NAMESPACE = "verrazzano-monitoring"
COMPONENT_JSON_NAME = "thanos"

QUERY_DEPLOYMENT = "thanos-query"
FRONTEND_DEPLOYMENT = "thanos-query-frontend"
STORE_GATEWAY_DEPLOYMENT = "thanos-storegateway"

QUERY_PORT = 10902


class ThanosComponent(ManifestComponent):
    """Thanos query, query frontend and optional store gateway."""

    def __init__(self):
        super().__init__(
            name=COMPONENT_NAME,
            namespace=COMPONENT_NAMESPACE,
            json_name=COMPONENT_JSON_NAME,
            image_name="thanos/thanos",
            image_tag="v0.30.2",
            dependencies=[ingress.COMPONENT_NAME],
            enabled_by_default=False,
            availability=AvailabilityObjects(
                deployment_names=[
                    NamespacedName(COMPONENT_NAMESPACE, FRONTEND_DEPLOYMENT),
                    NamespacedName(COMPONENT_NAMESPACE, QUERY_DEPLOYMENT),
                ]
            ),
        )

    @property
    def config_schema(self) -> Optional[Dict[str, Any]]:
        return {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "image": {"type": "string"},
                "storeGateway": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "objectStorageSecret": {"type": "string"},
                    },
                    "if": {"properties": {"enabled": {"const": True}}},
                    "then": {"required": ["objectStorageSecret"]},
                },
            },
        }

    def _store_gateway(self, ctx: ComponentContext) -> Dict[str, Any]:
        return self.config(ctx).get("storeGateway") or {}

    def manifests(self, ctx: ComponentContext) -> List[Manifest]:
        image = self.image(ctx)
        result = [
            deployment_manifest(
                QUERY_DEPLOYMENT,
                COMPONENT_NAMESPACE,
                image,
                args=["query", f"--http-address=0.0.0.0:{QUERY_PORT}"],
            ),
            deployment_manifest(
                FRONTEND_DEPLOYMENT,
                COMPONENT_NAMESPACE,
                image,
                args=[
                    "query-frontend",
                    f"--query-frontend.downstream-url=http://{QUERY_DEPLOYMENT}:{QUERY_PORT}",
                ],
            ),
        ]
        store_gateway = self._store_gateway(ctx)
        if store_gateway.get("enabled"):
            result.append(
                deployment_manifest(
                    STORE_GATEWAY_DEPLOYMENT,
                    COMPONENT_NAMESPACE,
                    image,
                    args=["store", "--objstore.config-file=/conf/objstore.yml"],
                )
            )
        return result

    async def _check_object_storage_secret(self, ctx: ComponentContext) -> None:
        store_gateway = self._store_gateway(ctx)
        if not store_gateway.get("enabled"):
            return
        secret = store_gateway["objectStorageSecret"]
        try:
            await ctx.client.get("Secret", COMPONENT_NAMESPACE, secret)
        except NotFoundError as e:
            raise RuntimeError(
                f"Thanos object storage secret {COMPONENT_NAMESPACE}/{secret} does not exist"
            ) from e

    async def _apply_query_service(self, ctx: ComponentContext) -> None:
        if ctx.dry_run or not ingress.IngressComponent().is_enabled(ctx.resource):
            return
        await ctx.client.create_or_update(
            service_manifest(
                QUERY_DEPLOYMENT, COMPONENT_NAMESPACE, {"app": QUERY_DEPLOYMENT}, QUERY_PORT
            )
        )

    async def pre_install(self, ctx: ComponentContext) -> None:
        await self._check_object_storage_secret(ctx)

    async def pre_upgrade(self, ctx: ComponentContext) -> None:
        await self._check_object_storage_secret(ctx)

    async def post_install(self, ctx: ComponentContext) -> None:
        await self._apply_query_service(ctx)

    async def post_upgrade(self, ctx: ComponentContext) -> None:
        await self._apply_query_service(ctx)
