"""
Managed resource model and the store interface used to persist it.

A managed resource declares the desired platform state (target version and
per-component configuration blocks) and carries the observed status with
its condition log. The store owns the record; the operator only reads it
and replaces its status.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from conditions import PlatformStatus


class PlatformSpec(BaseModel):
    """Desired platform state."""

    model_config = ConfigDict(populate_by_name=True)

    version: Optional[str] = Field(None, description="Target platform version")
    profile: str = Field("prod", description="Installation profile")
    components: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Configuration blocks keyed by component JSON name",
    )


class ManagedResource(BaseModel):
    """Top-level record declaring the desired platform state."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    namespace: str = "default"
    generation: int = 1
    spec: PlatformSpec = Field(default_factory=PlatformSpec)
    status: PlatformStatus = Field(default_factory=PlatformStatus)

    @property
    def key(self) -> str:
        """Unique key of this resource, ``namespace/name``."""
        return f"{self.namespace}/{self.name}"

    def component_config(self, json_name: str) -> Dict[str, Any]:
        """Return the configuration block for a component (empty if absent)."""
        return self.spec.components.get(json_name) or {}

    def target_version(self, default: str) -> str:
        """Return the requested version, falling back to ``default``."""
        return self.spec.version or default


class ResourceStore(ABC):
    """Read/write access to managed resource records."""

    @abstractmethod
    async def get_resource(
        self, namespace: str, name: str
    ) -> Optional[ManagedResource]:
        """
        Fetch the current copy of a managed resource.

        Returns:
            The resource, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def update_status(self, resource: ManagedResource) -> None:
        """
        Atomically replace the status of a managed resource.

        Args:
            resource: Resource whose ``status`` is written back. The spec
                is never modified by this call.
        """
        pass
