"""
Tests for services/alerts/deduplication.py - sliding (reactor, field, threshold) debounce.
"""
from datetime import datetime, timedelta, timezone

import pytest

from services.alerts.alert_types import Alert, AlertSeverity, ThresholdType
from services.alerts.deduplication import DeduplicationGuard
from services.telemetry.schema import StreamKind

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _make_alert(alert_id=1, reactor_id=1, field_name="ph", threshold_type=ThresholdType.MIN,
                age=timedelta(minutes=1), acknowledged=False):
    return Alert(
        alert_id=alert_id,
        reactor_id=reactor_id,
        setpoint_id=11,
        stream_kind=StreamKind.GAS,
        field_name=field_name,
        current_value=5.0,
        threshold_value=10.0,
        threshold_type=threshold_type,
        severity=AlertSeverity.CRITICAL,
        message="m",
        created_at=NOW - age,
        is_acknowledged=acknowledged,
    )


@pytest.fixture
def guard():
    return DeduplicationGuard()


class TestConstruction:
    def test_defaults(self, guard):
        assert guard.window == timedelta(minutes=5)
        assert guard.lookback == 10
        assert guard.get_stats() == {"window_seconds": 300.0, "lookback": 10}

    def test_rejects_bad_window(self):
        with pytest.raises(ValueError):
            DeduplicationGuard(window=timedelta(0))

    def test_rejects_bad_lookback(self):
        with pytest.raises(ValueError):
            DeduplicationGuard(lookback=0)


class TestIsDuplicate:
    def test_recent_same_field_and_type(self, guard):
        recent = [_make_alert(age=timedelta(minutes=1))]
        assert guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_no_recent_alerts(self, guard):
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, [], NOW)

    def test_window_elapsed(self, guard):
        recent = [_make_alert(age=timedelta(minutes=5))]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_just_inside_window(self, guard):
        recent = [_make_alert(age=timedelta(minutes=4, seconds=59))]
        assert guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_other_threshold_type_is_not_duplicate(self, guard):
        recent = [_make_alert(threshold_type=ThresholdType.MAX)]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_other_field_is_not_duplicate(self, guard):
        recent = [_make_alert(field_name="DO")]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_acknowledged_alert_does_not_suppress(self, guard):
        recent = [_make_alert(acknowledged=True)]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_other_reactor_does_not_suppress(self, guard):
        recent = [_make_alert(reactor_id=2)]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)

    def test_find_duplicate_returns_matching_alert(self, guard):
        match = _make_alert(alert_id=7)
        recent = [_make_alert(alert_id=6, field_name="DO"), match]
        assert guard.find_duplicate(1, "ph", ThresholdType.MIN, recent, NOW) is match

    def test_custom_window(self):
        guard = DeduplicationGuard(window=timedelta(seconds=30))
        recent = [_make_alert(age=timedelta(minutes=1))]
        assert not guard.is_duplicate(1, "ph", ThresholdType.MIN, recent, NOW)
