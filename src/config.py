"""
Configuration module for the Platform Operator.

Loads configuration from environment variables. There is no global
instance: the entry point builds a Config and hands each part to the
object that needs it.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "platform_operator"
    user: str = "operator"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 5
    max_pool_size: int = 20

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        password = os.getenv("DB_PASSWORD", "")
        if not password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set. "
                "Database password cannot be empty."
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "platform_operator"),
            user=os.getenv("DB_USER", "operator"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "5")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "20")),
        )


@dataclass
class ControllerConfig:
    """Controller loop configuration."""

    reconcile_interval: int = 5  # seconds between polls of the store
    max_concurrent_reconciles: int = 5

    # Exponential backoff for passes that raise without a requeue delay
    backoff_base_delay: int = 5  # base delay in seconds
    backoff_max_delay: int = 300  # max delay in seconds
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "5")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            backoff_base_delay=int(os.getenv("BACKOFF_BASE_DELAY", "5")),
            backoff_max_delay=int(os.getenv("BACKOFF_MAX_DELAY", "300")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
        )


@dataclass
class ReconcilerConfig:
    """Reconciler timing and platform defaults."""

    started_requeue_delay: float = 1  # seconds
    requeue_min_delay: float = 2
    requeue_max_delay: float = 5
    not_ready_requeue_delay: float = 10
    health_check_interval: float = 60
    stall_threshold: timedelta = timedelta(minutes=5)
    dry_run: bool = False
    operator_version: str = "1.0.0"
    image_registry: str = ""

    # Platform-wide hooks, called as hook(resource, cluster_client) once
    # every component has finished the operation
    post_install_hooks: List[Callable[..., Awaitable[None]]] = field(
        default_factory=list
    )
    post_upgrade_hooks: List[Callable[..., Awaitable[None]]] = field(
        default_factory=list
    )

    def __post_init__(self):
        if self.requeue_min_delay > self.requeue_max_delay:
            raise ValueError(
                f"REQUEUE_MIN_DELAY ({self.requeue_min_delay}) must not exceed "
                f"REQUEUE_MAX_DELAY ({self.requeue_max_delay})"
            )

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            started_requeue_delay=float(os.getenv("STARTED_REQUEUE_DELAY", "1")),
            requeue_min_delay=float(os.getenv("REQUEUE_MIN_DELAY", "2")),
            requeue_max_delay=float(os.getenv("REQUEUE_MAX_DELAY", "5")),
            not_ready_requeue_delay=float(os.getenv("NOT_READY_REQUEUE_DELAY", "10")),
            health_check_interval=float(os.getenv("HEALTH_CHECK_INTERVAL", "60")),
            stall_threshold=timedelta(
                seconds=int(os.getenv("STALL_THRESHOLD_SECONDS", "300"))
            ),
            dry_run=_env_bool("DRY_RUN"),
            operator_version=os.getenv("OPERATOR_VERSION", "1.0.0"),
            image_registry=os.getenv("IMAGE_REGISTRY", ""),
        )


@dataclass
class ClusterConfig:
    """Kubernetes API access."""

    kubeconfig: Optional[str] = None
    in_cluster: bool = False

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            kubeconfig=os.getenv("KUBECONFIG") or None,
            in_cluster=_env_bool("IN_CLUSTER"),
        )


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig
    controller: ControllerConfig
    reconciler: ReconcilerConfig
    cluster: ClusterConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
            reconciler=ReconcilerConfig.from_env(),
            cluster=ClusterConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            database=DatabaseConfig(),
            controller=ControllerConfig(),
            reconciler=ReconcilerConfig(),
            cluster=ClusterConfig(),
        )
