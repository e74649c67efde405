"""
Operator errors.

Reconcile errors carry the delay the caller should wait before invoking
the reconciler again. A ``requeue_after`` of ``None`` means the reconciler
has no opinion and the caller applies its own backoff.
"""

from typing import Optional


class OperatorError(Exception):
    """Base class for all platform operator errors."""


class ConfigurationError(OperatorError, ValueError):
    """Invalid static configuration. Never retried automatically."""


class NotFoundError(OperatorError):
    """A cluster object or managed resource does not exist."""

    def __init__(self, kind: str, namespace: Optional[str], name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class ReconcileError(OperatorError):
    """A reconcile pass stopped before finishing."""

    def __init__(self, message: str, requeue_after: Optional[float] = None):
        super().__init__(message)
        self.requeue_after = requeue_after


class ComponentHookError(ReconcileError):
    """A pre- or post-operation hook of a component failed."""

    def __init__(
        self,
        component: str,
        hook: str,
        cause: Exception,
        requeue_after: Optional[float] = None,
    ):
        self.component = component
        self.hook = hook
        self.cause = cause
        super().__init__(
            f"{hook} failed for component {component}: {cause}", requeue_after
        )


class ComponentOperationError(ReconcileError):
    """Install or upgrade of a component failed."""

    def __init__(self, component: str, operation: str, cause: Exception):
        self.component = component
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"{operation.capitalize()} failed for component {component}: {cause}"
        )


class PostOperationError(ReconcileError):
    """The platform-wide post-operation step failed."""


class StatusUpdateError(ReconcileError):
    """Writing the managed resource status back failed."""
