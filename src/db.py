"""
Database Manager - PostgreSQL storage of managed resources.

Stores the managed resource records (spec, status and condition log) and
the reconcile schedule the controller polls.
"""

import asyncpg
import json
import logging
from typing import Any, Dict, List, Optional

from errors import NotFoundError
from migrate import run_migrations
from resources import ManagedResource, PlatformSpec, ResourceStore

logger = logging.getLogger(__name__)

RESOURCE_KIND = "ManagedResource"


class DatabaseManager(ResourceStore):
    """Manages PostgreSQL database operations for the operator."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 5,
        max_pool_size: int = 20,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,  # Query timeout
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        """Ensure the database connection pool is established."""
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Apply database migrations to bring schema up to date."""
        self._ensure_connected()
        await run_migrations(self.pool)
        logger.info("Database schema initialized")

    # ==================== Resource Methods ====================

    async def create_resource(
        self, namespace: str, name: str, spec: PlatformSpec
    ) -> ManagedResource:
        """
        Create a new managed resource, scheduled for immediate reconciliation.

        Args:
            namespace: Resource namespace
            name: Resource name (unique within the namespace)
            spec: Desired platform state
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO managed_resources (namespace, name, spec)
                VALUES ($1, $2, $3)
                RETURNING *
                """,
                namespace,
                name,
                json.dumps(spec.model_dump(mode="json", exclude_none=True)),
            )

            logger.info(f"Created managed resource {namespace}/{name}")
            return self._parse_resource_row(row)

    async def update_resource_spec(
        self, namespace: str, name: str, spec: PlatformSpec
    ) -> int:
        """
        Replace the spec of a managed resource.

        Bumps the generation, clears a configuration pause and schedules
        the resource for immediate reconciliation.

        Returns:
            The new generation.

        Raises:
            NotFoundError: If the resource does not exist.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            generation = await conn.fetchval(
                """
                UPDATE managed_resources
                SET spec = $1,
                    generation = generation + 1,
                    paused = FALSE,
                    retry_count = 0,
                    last_error = NULL,
                    next_reconcile_time = NOW(),
                    updated_at = NOW()
                WHERE namespace = $2 AND name = $3
                RETURNING generation
                """,
                json.dumps(spec.model_dump(mode="json", exclude_none=True)),
                namespace,
                name,
            )
            if generation is None:
                raise NotFoundError(RESOURCE_KIND, namespace, name)

            logger.info(
                f"Updated managed resource {namespace}/{name} to generation {generation}"
            )
            return generation

    async def delete_resource(self, namespace: str, name: str) -> bool:
        """Delete a managed resource record. Returns False if it did not exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            result = await conn.fetchval(
                """
                DELETE FROM managed_resources
                WHERE namespace = $1 AND name = $2
                RETURNING id
                """,
                namespace,
                name,
            )
            if result:
                logger.info(f"Deleted managed resource {namespace}/{name}")
                return True
            return False

    async def get_resource(
        self, namespace: str, name: str
    ) -> Optional[ManagedResource]:
        """Get a managed resource by namespace and name."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM managed_resources WHERE namespace = $1 AND name = $2",
                namespace,
                name,
            )
            if not row:
                return None

            return self._parse_resource_row(row)

    async def update_status(self, resource: ManagedResource) -> None:
        """
        Replace the status of a managed resource.

        Raises:
            NotFoundError: If the resource no longer exists.
        """
        self._ensure_connected()
        status = resource.status.model_dump(mode="json", by_alias=True)
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE managed_resources
                SET status = $1, updated_at = NOW()
                WHERE namespace = $2 AND name = $3
                """,
                json.dumps(status),
                resource.namespace,
                resource.name,
            )
        if result == "UPDATE 0":
            raise NotFoundError(RESOURCE_KIND, resource.namespace, resource.name)

    # ==================== Scheduling Methods ====================

    async def get_resources_needing_reconciliation(
        self, limit: int = 10
    ) -> List[ManagedResource]:
        """Get resources whose scheduled reconcile time has passed."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT *
                FROM managed_resources
                WHERE paused = FALSE
                  AND (next_reconcile_time IS NULL OR next_reconcile_time <= NOW())
                ORDER BY next_reconcile_time ASC NULLS FIRST
                LIMIT $1
                """,
                limit,
            )

            return [self._parse_resource_row(row) for row in rows]

    async def schedule_reconcile(
        self,
        namespace: str,
        name: str,
        delay: float,
        reset_retries: bool = True,
    ) -> None:
        """
        Schedule the next reconcile pass of a resource.

        Args:
            namespace: Resource namespace
            name: Resource name
            delay: Seconds from now until the next pass
            reset_retries: Clear the failure count (after a successful pass)
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            if reset_retries:
                await conn.execute(
                    """
                    UPDATE managed_resources
                    SET next_reconcile_time = NOW() + INTERVAL '1 second' * $1,
                        last_reconcile_time = NOW(),
                        retry_count = 0,
                        last_error = NULL
                    WHERE namespace = $2 AND name = $3
                    """,
                    delay,
                    namespace,
                    name,
                )
            else:
                await conn.execute(
                    """
                    UPDATE managed_resources
                    SET next_reconcile_time = NOW() + INTERVAL '1 second' * $1,
                        last_reconcile_time = NOW()
                    WHERE namespace = $2 AND name = $3
                    """,
                    delay,
                    namespace,
                    name,
                )

    async def record_failure(self, namespace: str, name: str, error: str) -> int:
        """
        Record a failed reconcile pass.

        Returns:
            The number of consecutive failures, including this one.
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            retry_count = await conn.fetchval(
                """
                UPDATE managed_resources
                SET retry_count = retry_count + 1,
                    last_error = $1
                WHERE namespace = $2 AND name = $3
                RETURNING retry_count
                """,
                error,
                namespace,
                name,
            )
            return retry_count or 0

    async def pause_resource(self, namespace: str, name: str, error: str) -> None:
        """Stop scheduling a resource until its spec changes."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE managed_resources
                SET paused = TRUE,
                    last_error = $1,
                    last_reconcile_time = NOW()
                WHERE namespace = $2 AND name = $3
                """,
                error,
                namespace,
                name,
            )
            logger.warning(f"Paused reconciliation of {namespace}/{name}")

    async def mark_resource_for_reconciliation(self, namespace: str, name: str):
        """Manually trigger reconciliation for a resource."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE managed_resources
                SET next_reconcile_time = NOW()
                WHERE namespace = $1 AND name = $2
                """,
                namespace,
                name,
            )

    def _parse_resource_row(self, row: asyncpg.Record) -> ManagedResource:
        """
        Parse a resource row from the database, converting JSON fields.

        Args:
            row: An asyncpg.Record from a query on managed_resources

        Returns:
            The managed resource with spec and status parsed
        """
        result: Dict[str, Any] = dict(row)
        spec = result.get("spec")
        status = result.get("status")
        return ManagedResource.model_validate(
            {
                "namespace": result["namespace"],
                "name": result["name"],
                "generation": result.get("generation", 1),
                "spec": json.loads(spec) if isinstance(spec, str) else spec or {},
                "status": json.loads(status) if isinstance(status, str) else status or {},
            }
        )
