"""
Main entry point for the Platform Operator.

This module wires the store, cluster client, component registry,
reconciler and controller together and runs the controller loop.
"""

import asyncio
import logging
import signal
from typing import Optional

from cluster import KubernetesClusterClient
from components.registry import default_registry
from config import Config
from controller import Controller
from db import DatabaseManager
from reconciler import Reconciler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the controller and its dependencies."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config.from_env()
        self.db: Optional[DatabaseManager] = None
        self.cluster: Optional[KubernetesClusterClient] = None
        self.controller: Optional[Controller] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing Platform Operator")

        # Fails fast on an inconsistent component set
        registry = default_registry()
        logger.info(f"Registered components: {', '.join(registry.list_components())}")

        db_config = self.config.database
        self.db = DatabaseManager(
            host=db_config.host,
            port=db_config.port,
            database=db_config.database,
            user=db_config.user,
            password=db_config.password,
            min_pool_size=db_config.min_pool_size,
            max_pool_size=db_config.max_pool_size,
        )
        await self.db.connect()
        await self.db.initialize_schema()
        logger.info("Database initialized")

        cluster_config = self.config.cluster
        self.cluster = KubernetesClusterClient()
        await self.cluster.connect(
            kubeconfig=cluster_config.kubeconfig,
            in_cluster=cluster_config.in_cluster,
        )

        reconciler = Reconciler(
            store=self.db,
            client=self.cluster,
            registry=registry,
            config=self.config.reconciler,
        )
        if self.config.reconciler.dry_run:
            logger.warning("Dry run enabled: no cluster objects will be changed")

        self.controller = Controller(
            db_manager=self.db,
            reconciler=reconciler,
            config=self.config.controller,
        )

        logger.info("All components initialized")

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info("Starting Platform Operator")

        try:
            await self.controller.start()
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping Platform Operator")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.cluster:
            await self.cluster.close()

        if self.db:
            await self.db.close()

        logger.info("Platform Operator stopped")


async def main():
    """Main entry point."""
    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
