"""
Operator Controller - Main reconciliation loop.

Polls the resource store for managed resources that are due, runs one
reconcile pass for each and schedules the next pass from the result.
Similar to a Kubernetes controller work queue: at most one pass is in
flight per resource, different resources reconcile concurrently.
"""

import asyncio
import logging
import random
import time
from typing import Callable, Dict, Optional

from config import ControllerConfig
from db import DatabaseManager
from errors import ConfigurationError, ReconcileError
from reconciler import Reconciler
from resources import ManagedResource

logger = logging.getLogger(__name__)


def compute_backoff(
    retries: int,
    base_delay: float,
    max_delay: float,
    jitter_factor: float,
    uniform: Callable[[float, float], float] = random.uniform,
) -> float:
    """
    Exponential backoff with jitter.

    The exponent is capped at 10 so large retry counts cannot overflow;
    jitter of ±jitter_factor spreads out retries of many resources.
    """
    delay = min(base_delay * (2 ** min(retries, 10)), max_delay)
    return delay * (1 + uniform(-jitter_factor, jitter_factor))


class Controller:
    """
    Main controller that drives the reconciler.

    Watches the store for resources that need reconciliation and runs the
    reconciler for each one, translating its requeue requests (or errors)
    into the resource's next scheduled reconcile time.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        reconciler: Reconciler,
        config: Optional[ControllerConfig] = None,
    ):
        self.db = db_manager
        self.reconciler = reconciler
        self.config = config or ControllerConfig()
        self.reconcile_interval = self.config.reconcile_interval
        self.max_concurrent_reconciles = self.config.max_concurrent_reconciles
        self.semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        self.running = False
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def start(self):
        """Start the controller reconciliation loop."""
        logger.info("Starting Platform Operator Controller")
        self.running = True
        try:
            await self._reconciliation_loop()
        except Exception as e:
            logger.error(f"Controller error: {e}")
            raise

    async def stop(self):
        """Stop the controller after the current cycle."""
        logger.info("Stopping Platform Operator Controller")
        self.running = False

    async def _reconciliation_loop(self):
        """Main reconciliation loop - watches for resources needing reconciliation."""
        while self.running:
            try:
                resources = await self.db.get_resources_needing_reconciliation(
                    limit=self.max_concurrent_reconciles * 2
                )

                if resources:
                    logger.info(
                        f"Found {len(resources)} resources needing reconciliation"
                    )
                    tasks = [
                        self._reconcile_resource(resource) for resource in resources
                    ]
                    await asyncio.gather(*tasks, return_exceptions=True)

                await asyncio.sleep(self.reconcile_interval)

            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)
                await asyncio.sleep(10)  # Brief pause on error

    async def _reconcile_resource(self, resource: ManagedResource):
        """
        Run one reconcile pass for a resource and schedule the next one.

        The resource is re-read under the per-key lock so the pass always
        starts from the latest condition log.
        """
        key = resource.key
        async with self.semaphore, self._lock_for(key):
            current = await self.db.get_resource(resource.namespace, resource.name)
            if current is None:
                logger.info(f"Managed resource {key} no longer exists")
                self.reconciler.forget(key)
                self._locks.pop(key, None)
                return

            start_time = time.monotonic()
            try:
                result = await self.reconciler.reconcile(current)
            except ConfigurationError as e:
                logger.error(f"Invalid configuration for {key}, not requeuing: {e}")
                await self.db.pause_resource(current.namespace, current.name, str(e))
                return
            except ReconcileError as e:
                logger.error(f"Reconcile of {key} failed: {e}", exc_info=True)
                await self._schedule_retry(current, e, e.requeue_after)
                return
            except Exception as e:
                logger.error(
                    f"Unexpected error reconciling {key}: {e}", exc_info=True
                )
                await self._schedule_retry(current, e, None)
                return

            duration = time.monotonic() - start_time
            delay = (
                result.requeue_after
                if result.requeue_after is not None
                else self.reconcile_interval
            )
            logger.info(
                f"Reconciled {key} in {duration:.2f}s: {result.message or 'ok'} "
                f"(next in {delay:.1f}s)"
            )
            await self.db.schedule_reconcile(current.namespace, current.name, delay)

    async def _schedule_retry(
        self,
        resource: ManagedResource,
        error: Exception,
        requeue_after: Optional[float],
    ) -> None:
        """Record a failed pass and schedule the retry."""
        retries = await self.db.record_failure(
            resource.namespace, resource.name, str(error)
        )
        if requeue_after is None:
            requeue_after = compute_backoff(
                max(retries - 1, 0),
                self.config.backoff_base_delay,
                self.config.backoff_max_delay,
                self.config.backoff_jitter_factor,
            )
        logger.info(
            f"Retrying {resource.key} in {requeue_after:.1f}s (attempt {retries})"
        )
        await self.db.schedule_reconcile(
            resource.namespace, resource.name, requeue_after, reset_retries=False
        )

    async def trigger_reconciliation(self, namespace: str, name: str):
        """Manually trigger reconciliation of a managed resource."""
        await self.db.mark_resource_for_reconciliation(namespace, name)
        logger.info(f"Triggered reconciliation for {namespace}/{name}")
