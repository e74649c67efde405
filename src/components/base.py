"""
Component Base - Abstract interface for platform components.

A component is one independently installable and upgradable software unit
of the platform (an ingress controller, a database, a metrics backend...).
Components are stateless and shared by every reconcile pass; per-pass data
travels in the ComponentContext handed to each hook. Every hook must be
idempotent: a pass may be interrupted and re-run at any point.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from cluster import ClusterClient
from conditions import Operation, utc_now
from resources import ManagedResource
from watchdog import Clock, StallTimer, StallTimers


class ComponentContext:
    """
    Context provided to component hooks by the reconciler.

    Gives hooks access to the cluster, the managed resource being
    reconciled, the operation in progress and the stall timer cells that
    belong to this resource.
    """

    def __init__(
        self,
        client: ClusterClient,
        resource: ManagedResource,
        stall_timers: StallTimers,
        operation: Optional[Operation] = None,
        component: Optional[str] = None,
        dry_run: bool = False,
        clock: Clock = utc_now,
        operator_version: str = "",
        image_registry: str = "",
    ):
        self.client = client
        self.resource = resource
        self.stall_timers = stall_timers
        self.operation = operation
        self.component = component
        self.dry_run = dry_run
        self.clock = clock
        self.operator_version = operator_version
        self.image_registry = image_registry

    def _copy(self, **overrides: Any) -> "ComponentContext":
        values = dict(
            client=self.client,
            resource=self.resource,
            stall_timers=self.stall_timers,
            operation=self.operation,
            component=self.component,
            dry_run=self.dry_run,
            clock=self.clock,
            operator_version=self.operator_version,
            image_registry=self.image_registry,
        )
        values.update(overrides)
        return ComponentContext(**values)

    def for_component(self, name: str) -> "ComponentContext":
        """Return a copy of this context scoped to a component."""
        return self._copy(component=name)

    @property
    def target_version(self) -> str:
        return self.resource.target_version(self.operator_version)

    def now(self) -> datetime:
        return self.clock()

    def stall_timer(self, watch: str) -> StallTimer:
        """
        Return the stall timer cell for a watch of the current component.

        Raises:
            RuntimeError: If the context is not scoped to a component.
        """
        if self.component is None:
            raise RuntimeError("stall_timer() requires a component-scoped context")
        return self.stall_timers.get(self.resource.key, self.component, watch)

    def describe(self) -> str:
        """Short description used as a log prefix."""
        return f"Component {self.component}"


class Component(ABC):
    """
    Abstract base class for platform components.

    Lifecycle hooks are async and receive a ComponentContext. Pre and post
    hooks default to no-ops; install, upgrade and the installed/ready
    checks must be provided by every component.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this component."""
        pass

    @property
    @abstractmethod
    def namespace(self) -> str:
        """Namespace the component's workloads live in."""
        pass

    @property
    def json_name(self) -> str:
        """Key of this component's configuration block in the resource spec."""
        return self.name

    @property
    def operations(self) -> FrozenSet[Operation]:
        """Lifecycle operations this component takes part in."""
        return frozenset({Operation.INSTALL, Operation.UPGRADE})

    @property
    def enabled_by_default(self) -> bool:
        return True

    @property
    def config_schema(self) -> Optional[Dict[str, Any]]:
        """JSON Schema for this component's configuration block, if any."""
        return None

    def get_dependencies(self) -> List[str]:
        """Names of components that must be processed before this one."""
        return []

    def is_enabled(self, resource: ManagedResource) -> bool:
        """Return True if the managed resource enables this component."""
        enabled = resource.component_config(self.json_name).get("enabled")
        if enabled is None:
            return self.enabled_by_default
        return bool(enabled)

    @abstractmethod
    async def is_installed(self, ctx: ComponentContext) -> bool:
        """
        Return True if this component takes part in the current operation.

        The reconciler skips every hook of a component reporting False.
        """
        pass

    async def pre_install(self, ctx: ComponentContext) -> None:
        pass

    @abstractmethod
    async def install(self, ctx: ComponentContext) -> None:
        """Install the component. Must converge when called repeatedly."""
        pass

    async def post_install(self, ctx: ComponentContext) -> None:
        pass

    async def pre_upgrade(self, ctx: ComponentContext) -> None:
        pass

    @abstractmethod
    async def upgrade(self, ctx: ComponentContext) -> None:
        """Upgrade the component to the target version. Must converge."""
        pass

    async def post_upgrade(self, ctx: ComponentContext) -> None:
        pass

    @abstractmethod
    async def is_ready(self, ctx: ComponentContext) -> bool:
        """Return True if the component's workloads are available."""
        pass

    async def heal(self, ctx: ComponentContext) -> bool:
        """
        Run the component's watchdogs while it is not ready.

        Returns:
            True if a remediation was performed.
        """
        return False

    async def pre_operation(self, ctx: ComponentContext, operation: Operation) -> None:
        if operation is Operation.INSTALL:
            await self.pre_install(ctx)
        else:
            await self.pre_upgrade(ctx)

    async def run_operation(self, ctx: ComponentContext, operation: Operation) -> None:
        if operation is Operation.INSTALL:
            await self.install(ctx)
        else:
            await self.upgrade(ctx)

    async def post_operation(self, ctx: ComponentContext, operation: Operation) -> None:
        if operation is Operation.INSTALL:
            await self.post_install(ctx)
        else:
            await self.post_upgrade(ctx)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
