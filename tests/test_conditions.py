"""Unit tests for conditions.py - Condition log and platform status."""

from datetime import datetime, timedelta, timezone

import pytest

from conditions import (
    Condition,
    ConditionType,
    Operation,
    OperationPhase,
    PlatformState,
    PlatformStatus,
)

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestOperation:
    """Tests for Operation condition type mapping."""

    def test_install_condition_types(self):
        assert Operation.INSTALL.started == ConditionType.INSTALL_STARTED
        assert Operation.INSTALL.complete == ConditionType.INSTALL_COMPLETE
        assert Operation.INSTALL.failed == ConditionType.INSTALL_FAILED

    def test_upgrade_condition_types(self):
        assert Operation.UPGRADE.started == ConditionType.UPGRADE_STARTED
        assert Operation.UPGRADE.complete == ConditionType.UPGRADE_COMPLETE
        assert Operation.UPGRADE.failed == ConditionType.UPGRADE_FAILED


class TestCondition:
    """Tests for Condition model."""

    def test_naive_timestamp_is_treated_as_utc(self):
        condition = Condition(
            type=ConditionType.INSTALL_STARTED,
            last_transition_time=datetime(2024, 1, 1, 12, 0, 0, 500000),
        )
        assert condition.last_transition_time == T0

    def test_timestamp_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        condition = Condition(
            type=ConditionType.INSTALL_STARTED,
            last_transition_time=datetime(2024, 1, 1, 14, 0, 0, tzinfo=plus_two),
        )
        assert condition.last_transition_time == T0

    def test_serializes_rfc3339(self):
        condition = Condition(
            type=ConditionType.UPGRADE_FAILED,
            message="boom",
            last_transition_time=T0,
        )
        data = condition.model_dump(mode="json", by_alias=True)
        assert data == {
            "type": "UpgradeFailed",
            "message": "boom",
            "lastTransitionTime": "2024-01-01T12:00:00Z",
        }

    def test_round_trip_through_json(self):
        condition = Condition(
            type=ConditionType.INSTALL_COMPLETE, message="ok", last_transition_time=T0
        )
        restored = Condition.model_validate(condition.model_dump(mode="json", by_alias=True))
        assert restored == condition

    def test_is_immutable(self):
        condition = Condition(type=ConditionType.INSTALL_STARTED, last_transition_time=T0)
        with pytest.raises(Exception):
            condition.message = "changed"


class TestPlatformStatus:
    """Tests for PlatformStatus condition log behaviour."""

    def test_empty_log(self):
        status = PlatformStatus()
        assert status.last_condition() is None
        assert status.is_installed() is False
        assert status.operation_phase(Operation.INSTALL) == OperationPhase.NOT_STARTED

    def test_append_sets_state(self):
        status = PlatformStatus()
        status.append_condition(ConditionType.INSTALL_STARTED, "started", T0)
        assert status.state == PlatformState.INSTALLING
        status.append_condition(ConditionType.INSTALL_FAILED, "failed", T0)
        assert status.state == PlatformState.FAILED
        status.append_condition(ConditionType.INSTALL_COMPLETE, "done", T0)
        assert status.state == PlatformState.READY

    def test_operation_phase_follows_last_entry(self):
        status = PlatformStatus()
        status.append_condition(ConditionType.INSTALL_STARTED, "", T0)
        assert status.operation_phase(Operation.INSTALL) == OperationPhase.IN_PROGRESS
        status.append_condition(ConditionType.INSTALL_FAILED, "", T0)
        assert status.operation_phase(Operation.INSTALL) == OperationPhase.FAILED
        status.append_condition(ConditionType.INSTALL_COMPLETE, "", T0)
        assert status.operation_phase(Operation.INSTALL) == OperationPhase.COMPLETE
        # Last entry belongs to install, so upgrade has not started
        assert status.operation_phase(Operation.UPGRADE) == OperationPhase.NOT_STARTED

    def test_is_installed_survives_later_upgrade_entries(self):
        status = PlatformStatus()
        status.append_condition(ConditionType.INSTALL_COMPLETE, "", T0)
        status.append_condition(ConditionType.UPGRADE_STARTED, "", T0)
        assert status.is_installed() is True
        assert status.is_last_condition(ConditionType.UPGRADE_STARTED)

    def test_timestamps_never_go_backwards(self):
        status = PlatformStatus()
        status.append_condition(ConditionType.INSTALL_STARTED, "", T0)
        appended = status.append_condition(
            ConditionType.INSTALL_COMPLETE, "", T0 - timedelta(minutes=5)
        )
        assert appended.last_transition_time == T0
        times = [c.last_transition_time for c in status.conditions]
        assert times == sorted(times)

    def test_entries_are_appended_not_rewritten(self):
        status = PlatformStatus()
        first = status.append_condition(ConditionType.UPGRADE_STARTED, "a", T0)
        status.append_condition(ConditionType.UPGRADE_STARTED, "b", T0 + timedelta(seconds=1))
        assert len(status.conditions) == 2
        assert status.conditions[0] is first

    def test_mark_resumed_keeps_log(self):
        status = PlatformStatus()
        status.append_condition(ConditionType.UPGRADE_STARTED, "go", T0)
        status.append_condition(ConditionType.UPGRADE_FAILED, "boom", T0)

        assert status.mark_resumed(Operation.UPGRADE) is True
        assert status.state == PlatformState.UPGRADING
        assert status.operation_phase(Operation.UPGRADE) == OperationPhase.FAILED
        assert len(status.conditions) == 2
        assert status.mark_resumed(Operation.UPGRADE) is False

    def test_status_round_trip(self):
        status = PlatformStatus(version="1.0.0")
        status.append_condition(ConditionType.INSTALL_STARTED, "start", T0)
        status.append_condition(ConditionType.INSTALL_COMPLETE, "done", T0 + timedelta(seconds=3))
        data = status.model_dump(mode="json", by_alias=True)
        assert data["conditions"][1]["lastTransitionTime"] == "2024-01-01T12:00:03Z"
        restored = PlatformStatus.model_validate(data)
        assert restored.conditions == status.conditions
        assert restored.state == PlatformState.READY
