"""
Platform Reconciler - drives a managed resource through install and upgrade.

One call performs one pass. A pass walks the component registry in order
and runs each component's hooks; progress is recorded only in the
resource's condition log, so any pass may be interrupted and re-run. The
reconciler never sleeps: when it needs to be called again it says so in
the returned ReconcileResult (or in the raised ReconcileError) and the
caller does the scheduling.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional, Tuple

from cluster import ClusterClient
from components.base import Component, ComponentContext
from components.registry import ComponentRegistry
from conditions import ConditionType, Operation, OperationPhase, utc_now
from config import ReconcilerConfig
from errors import (
    ComponentHookError,
    ComponentOperationError,
    PostOperationError,
    ReconcileError,
    StatusUpdateError,
)
from resources import ManagedResource, ResourceStore
from validation import validate_resource
from watchdog import Clock, StallTimers

logger = logging.getLogger(__name__)

_VERBS = {
    Operation.INSTALL: ("install", "installing", "installed"),
    Operation.UPGRADE: ("upgrade", "upgrading", "upgraded"),
}


@dataclass
class ReconcileResult:
    """Result of one reconcile pass."""

    requeue_after: Optional[float] = None
    message: str = ""

    @property
    def done(self) -> bool:
        return self.requeue_after is None


class Reconciler:
    """
    Reconciles managed resources against the component registry.

    The registry and components are shared read-only between passes.
    Stall timers are kept per resource key; the caller must not run two
    passes for the same key concurrently.
    """

    def __init__(
        self,
        store: ResourceStore,
        client: ClusterClient,
        registry: ComponentRegistry,
        config: Optional[ReconcilerConfig] = None,
        clock: Clock = utc_now,
        stall_timers: Optional[StallTimers] = None,
    ):
        self.store = store
        self.client = client
        self.registry = registry
        self.config = config or ReconcilerConfig()
        self.clock = clock
        if stall_timers is None:
            stall_timers = StallTimers(self.config.stall_threshold)
        self.stall_timers = stall_timers

    def get_components(self) -> Tuple[Component, ...]:
        """Return the registry's components in processing order."""
        return self.registry.get_components()

    def forget(self, resource_key: str) -> None:
        """Drop in-memory state kept for a managed resource."""
        self.stall_timers.forget(resource_key)

    def _requeue_with_delay(self) -> float:
        return random.uniform(self.config.requeue_min_delay, self.config.requeue_max_delay)

    def _new_context(
        self, resource: ManagedResource, operation: Optional[Operation] = None
    ) -> ComponentContext:
        return ComponentContext(
            client=self.client,
            resource=resource,
            stall_timers=self.stall_timers,
            operation=operation,
            dry_run=self.config.dry_run,
            clock=self.clock,
            operator_version=self.config.operator_version,
            image_registry=self.config.image_registry,
        )

    async def _update_status(
        self,
        resource: ManagedResource,
        condition_type: ConditionType,
        message: str,
        requeue_after: Optional[float] = None,
    ) -> None:
        """Append a condition and write the status back to the store."""
        resource.status.append_condition(condition_type, message, self.clock())
        await self._write_status(resource, requeue_after)

    async def _write_status(
        self, resource: ManagedResource, requeue_after: Optional[float] = None
    ) -> None:
        try:
            await self.store.update_status(resource)
        except Exception as e:
            logger.error(f"Failed to update status of {resource.key}: {e}")
            raise StatusUpdateError(
                f"Failed to update status of {resource.key}: {e}", requeue_after
            ) from e

    def _upgrade_needed(self, resource: ManagedResource) -> bool:
        phase = resource.status.operation_phase(Operation.UPGRADE)
        if phase in (OperationPhase.IN_PROGRESS, OperationPhase.FAILED):
            return True
        target = resource.target_version(self.config.operator_version)
        return resource.status.version != target

    async def reconcile(self, resource: ManagedResource) -> ReconcileResult:
        """
        Run whichever pass the resource needs next.

        Installs until an install has completed, upgrades while the
        recorded version differs from the target, and otherwise checks
        the health of every enabled component.
        """
        if not resource.status.is_installed():
            return await self.reconcile_install(resource)
        if self._upgrade_needed(resource):
            return await self.reconcile_upgrade(resource)
        return await self.check_health(resource)

    async def reconcile_install(self, resource: ManagedResource) -> ReconcileResult:
        """Install every component of the platform."""
        if resource.status.is_installed():
            logger.debug(f"Platform {resource.key} is already installed")
            return ReconcileResult(message="Platform already installed")
        return await self._reconcile_operation(resource, Operation.INSTALL)

    async def reconcile_upgrade(self, resource: ManagedResource) -> ReconcileResult:
        """Upgrade every installed component to the target version."""
        if not self._upgrade_needed(resource):
            logger.debug(
                f"Platform {resource.key} is already at version {resource.status.version}"
            )
            return ReconcileResult(message="Platform already upgraded")
        return await self._reconcile_operation(resource, Operation.UPGRADE)

    async def _reconcile_operation(
        self, resource: ManagedResource, operation: Operation
    ) -> ReconcileResult:
        verb, verbing, past = _VERBS[operation]
        target = resource.target_version(self.config.operator_version)
        logger.debug(f"Enter reconcile {verb} for {resource.key}")

        validate_resource(resource, self.registry.get_components())

        # Record the start before any side effect. A failed pass resumes
        # without a new start marker.
        phase = resource.status.operation_phase(operation)
        if phase in (OperationPhase.NOT_STARTED, OperationPhase.COMPLETE):
            msg = f"Platform {verb} to version {target} in progress"
            delay = self.config.started_requeue_delay
            await self._update_status(resource, operation.started, msg, requeue_after=delay)
            # Requeue to get a fresh copy of the resource before acting
            return ReconcileResult(requeue_after=delay, message=msg)

        if phase is OperationPhase.FAILED and resource.status.mark_resumed(operation):
            logger.info(f"Resuming failed {verb} of {resource.key}")
            await self._write_status(resource, requeue_after=self._requeue_with_delay())

        ctx = self._new_context(resource, operation)

        # Components are processed strictly one at a time; a failing
        # component blocks every component after it.
        for component in self.registry.get_components():
            name = component.name
            if operation not in component.operations:
                logger.debug(f"Component {name} does not support {verb}")
                continue

            comp_ctx = ctx.for_component(name)
            try:
                installed = await component.is_installed(comp_ctx)
            except Exception as e:
                logger.error(f"Error checking if component {name} is installed: {e}")
                raise ReconcileError(
                    f"Failed checking if component {name} is installed: {e}",
                    requeue_after=self._requeue_with_delay(),
                ) from e
            if not installed:
                logger.debug(f"Skip {verb} for {name}, not installed")
                continue

            logger.info(f"Running pre-{verb} for {name}")
            try:
                await component.pre_operation(comp_ctx, operation)
            except Exception as e:
                # Fatal until per-component retry is supported
                logger.error(f"Error running pre-{verb} for component {name}: {e}")
                raise ComponentHookError(name, f"pre-{verb}", e) from e

            logger.info(f"{verbing.capitalize()} {name}")
            try:
                await component.run_operation(comp_ctx, operation)
            except Exception as e:
                logger.error(f"Error {verbing} component {name}: {e}")
                msg = (
                    f"Error {verbing} component {name} - "
                    f"generation:{resource.generation}. Error is {e}"
                )
                await self._update_status(resource, operation.failed, msg)
                raise ComponentOperationError(name, verb, e) from e

            if not await self._component_ready(component, comp_ctx):
                msg = f"Waiting for component {name} to be ready"
                logger.info(msg)
                return ReconcileResult(
                    requeue_after=self.config.not_ready_requeue_delay, message=msg
                )

            logger.info(f"Running post-{verb} for {name}")
            try:
                await component.post_operation(comp_ctx, operation)
            except Exception as e:
                # Fatal until per-component retry is supported
                logger.error(f"Error running post-{verb} for component {name}: {e}")
                raise ComponentHookError(name, f"post-{verb}", e) from e

        hooks = (
            self.config.post_install_hooks
            if operation is Operation.INSTALL
            else self.config.post_upgrade_hooks
        )
        for hook in hooks:
            try:
                await hook(resource, self.client)
            except Exception as e:
                logger.error(f"Error running platform-level post-{verb}: {e}")
                raise PostOperationError(
                    f"Platform post-{verb} failed: {e}",
                    requeue_after=self.config.started_requeue_delay,
                ) from e

        msg = f"Platform {past} to version {target} successfully"
        logger.info(f"{msg} ({resource.key})")
        resource.status.version = target
        await self._update_status(
            resource,
            operation.complete,
            msg,
            requeue_after=self._requeue_with_delay(),
        )
        return ReconcileResult(message=msg)

    async def _component_ready(
        self, component: Component, ctx: ComponentContext
    ) -> bool:
        """Check readiness, running the component's watchdogs if not ready."""
        name = component.name
        try:
            if await component.is_ready(ctx):
                return True
        except Exception as e:
            logger.error(f"Error checking readiness of component {name}: {e}")
            raise ReconcileError(
                f"Failed checking readiness of component {name}: {e}",
                requeue_after=self._requeue_with_delay(),
            ) from e

        try:
            if await component.heal(ctx):
                logger.info(f"Remediation performed for component {name}")
        except Exception as e:
            logger.error(f"Error running watchdog for component {name}: {e}")
            raise ComponentHookError(
                name, "heal", e, requeue_after=self.config.not_ready_requeue_delay
            ) from e
        return False

    async def check_health(self, resource: ManagedResource) -> ReconcileResult:
        """
        Poll the readiness of every enabled component.

        Components that are not ready get their watchdogs run. The result
        always asks to be called again: sooner if anything is not ready.
        """
        ctx = self._new_context(resource)
        not_ready = []
        for component in self.registry.get_components():
            if not component.is_enabled(resource):
                continue
            comp_ctx = ctx.for_component(component.name)
            if not await self._component_ready(component, comp_ctx):
                not_ready.append(component.name)

        if not_ready:
            msg = f"Components not ready: {', '.join(not_ready)}"
            logger.info(f"Platform {resource.key}: {msg}")
            return ReconcileResult(
                requeue_after=self.config.not_ready_requeue_delay, message=msg
            )
        return ReconcileResult(
            requeue_after=self.config.health_check_interval,
            message="All components ready",
        )
