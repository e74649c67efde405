"""
Condition Log - append-only phase history of a managed resource.

The condition log is the reconciler's only persisted memory of progress.
Entries are never rewritten or removed; the last entry defines the
current phase of the platform.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Default wall clock."""
    return datetime.now(timezone.utc)


class ConditionType(str, Enum):
    """Phase markers recorded in the condition log."""

    INSTALL_STARTED = "InstallStarted"
    INSTALL_COMPLETE = "InstallComplete"
    INSTALL_FAILED = "InstallFailed"
    UPGRADE_STARTED = "UpgradeStarted"
    UPGRADE_COMPLETE = "UpgradeComplete"
    UPGRADE_FAILED = "UpgradeFailed"


class Operation(Enum):
    """Platform lifecycle operations driven by the reconciler."""

    INSTALL = "install"
    UPGRADE = "upgrade"

    @property
    def started(self) -> ConditionType:
        return ConditionType(f"{self.value.capitalize()}Started")

    @property
    def complete(self) -> ConditionType:
        return ConditionType(f"{self.value.capitalize()}Complete")

    @property
    def failed(self) -> ConditionType:
        return ConditionType(f"{self.value.capitalize()}Failed")


class OperationPhase(Enum):
    """Phase of one operation, derived from the condition log."""

    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    COMPLETE = "Complete"


class PlatformState(str, Enum):
    """Coarse platform state shown alongside the condition log."""

    INSTALLING = "Installing"
    UPGRADING = "Upgrading"
    READY = "Ready"
    FAILED = "Failed"


_STATE_FOR_CONDITION = {
    ConditionType.INSTALL_STARTED: PlatformState.INSTALLING,
    ConditionType.INSTALL_COMPLETE: PlatformState.READY,
    ConditionType.INSTALL_FAILED: PlatformState.FAILED,
    ConditionType.UPGRADE_STARTED: PlatformState.UPGRADING,
    ConditionType.UPGRADE_COMPLETE: PlatformState.READY,
    ConditionType.UPGRADE_FAILED: PlatformState.FAILED,
}


class Condition(BaseModel):
    """Immutable, timestamped phase marker."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: ConditionType
    message: str = ""
    last_transition_time: datetime = Field(alias="lastTransitionTime")

    @field_validator("last_transition_time")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        # RFC3339 with second precision, always UTC
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).replace(microsecond=0)

    @field_serializer("last_transition_time")
    def serialize_timestamp(self, v: datetime) -> str:
        return v.strftime(RFC3339_FORMAT)


class PlatformStatus(BaseModel):
    """Observed state of the platform."""

    model_config = ConfigDict(populate_by_name=True)

    version: Optional[str] = None
    state: Optional[PlatformState] = None
    conditions: List[Condition] = Field(default_factory=list)

    def last_condition(self) -> Optional[Condition]:
        """Return the most recent condition, or None for an empty log."""
        if not self.conditions:
            return None
        return self.conditions[-1]

    def is_last_condition(self, condition_type: ConditionType) -> bool:
        """Return True if the most recent condition has the given type."""
        last = self.last_condition()
        return last is not None and last.type == condition_type

    def has_condition(self, condition_type: ConditionType) -> bool:
        """Return True if the condition type appears anywhere in the log."""
        return any(c.type == condition_type for c in self.conditions)

    def is_installed(self) -> bool:
        """Return True once an install has completed at least once."""
        return self.has_condition(ConditionType.INSTALL_COMPLETE)

    def operation_phase(self, operation: Operation) -> OperationPhase:
        """
        Derive the phase of an operation from the condition log.

        Only the last entry is considered: a log whose last entry belongs to
        another operation reports NOT_STARTED for this one.
        """
        last = self.last_condition()
        if last is None:
            return OperationPhase.NOT_STARTED
        if last.type == operation.started:
            return OperationPhase.IN_PROGRESS
        if last.type == operation.failed:
            return OperationPhase.FAILED
        if last.type == operation.complete:
            return OperationPhase.COMPLETE
        return OperationPhase.NOT_STARTED

    def mark_resumed(self, operation: Operation) -> bool:
        """
        Show an operation as in progress again without a new log entry.

        Returns:
            True if the state changed.
        """
        state = _STATE_FOR_CONDITION[operation.started]
        if self.state == state:
            return False
        self.state = state
        return True

    def append_condition(
        self, condition_type: ConditionType, message: str, now: datetime
    ) -> Condition:
        """
        Append a condition to the log and update the platform state.

        Timestamps never go backwards: if ``now`` is older than the last
        entry, the new entry reuses the last entry's timestamp.
        """
        last = self.last_condition()
        condition = Condition(
            type=condition_type, message=message, last_transition_time=now
        )
        if last is not None and condition.last_transition_time < last.last_transition_time:
            condition = condition.model_copy(
                update={"last_transition_time": last.last_transition_time}
            )
        self.conditions.append(condition)
        self.state = _STATE_FOR_CONDITION[condition_type]
        return condition
