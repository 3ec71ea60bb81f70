"""
Tests for services/retention/data_retention.py - per-reactor telemetry retention
and acknowledged-alert purge.
"""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from services.alerts.alert_types import AlertDraft, AlertSeverity, Reactor, ThresholdType
from services.retention.data_retention import DataRetentionService, RetentionReport
from services.telemetry.schema import DilutionSample, GasSample, LevelControlSample, StreamKind
from shared.exceptions import ReactorNotFoundError


def _make_service(store, clock, **kwargs):
    return DataRetentionService(store, store, store, clock=clock, **kwargs)


def _daily_samples(store, clock, reactor_id, days, model=DilutionSample):
    for day in range(1, days + 1):
        store.add_sample(model(reactor_id=reactor_id, timestamp=clock() - timedelta(days=day, hours=1)))


async def _add_alert(store, created_at, acknowledged=False):
    alert = await store.create_alert(AlertDraft(
        reactor_id=1,
        stream_kind=StreamKind.GAS,
        field_name="pH",
        current_value=5.0,
        threshold_value=10.0,
        threshold_type=ThresholdType.MIN,
        severity=AlertSeverity.WARNING,
        message="m",
        created_at=created_at,
    ))
    if acknowledged:
        store.acknowledge_alert(alert.alert_id, user_id=1, acknowledged_at=created_at)
    return alert


class TestTelemetryRetention:
    @pytest.mark.asyncio
    async def test_thirty_day_reactor(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=30))
        # échantillons à J-1h .. J-60 -> 29 conservés (jours 1..29), 31 supprimés
        _daily_samples(store, clock, 1, 60)

        report = await _make_service(store, clock).run_cleanup()

        assert report.telemetry[StreamKind.DILUTION] == 31
        assert len(store.samples[(1, StreamKind.DILUTION)]) == 29
        cutoff = clock() - timedelta(days=30)
        assert all(s.timestamp >= cutoff for s in store.samples[(1, StreamKind.DILUTION)])

    @pytest.mark.asyncio
    async def test_default_retention_applies(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=400)))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=300)))

        service = _make_service(store, clock)
        report = await service.run_cleanup()

        assert service.retention_days_for(Reactor(reactor_id=1)) == 365
        assert report.telemetry[StreamKind.GAS] == 1
        assert len(store.samples[(1, StreamKind.GAS)]) == 1

    @pytest.mark.asyncio
    async def test_sample_exactly_at_cutoff_is_kept(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=7))
        store.add_sample(LevelControlSample(reactor_id=1, timestamp=clock() - timedelta(days=7)))

        report = await _make_service(store, clock).run_cleanup()

        assert report.telemetry_total == 0

    @pytest.mark.asyncio
    async def test_each_reactor_uses_its_own_retention(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=10))
        store.add_reactor(Reactor(reactor_id=2, data_retention_days=100))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=50)))
        store.add_sample(GasSample(reactor_id=2, timestamp=clock() - timedelta(days=50)))

        await _make_service(store, clock).run_cleanup()

        assert store.samples[(1, StreamKind.GAS)] == []
        assert len(store.samples[(2, StreamKind.GAS)]) == 1

    @pytest.mark.asyncio
    async def test_reactor_failure_is_isolated(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=10))
        store.add_reactor(Reactor(reactor_id=2, data_retention_days=10))
        store.add_sample(GasSample(reactor_id=2, timestamp=clock() - timedelta(days=50)))

        original = store.delete_telemetry_older_than

        async def flaky(reactor_id, kind, cutoff):
            if reactor_id == 1:
                raise ConnectionError("lock timeout")
            return await original(reactor_id, kind, cutoff)

        store.delete_telemetry_older_than = flaky

        report = await _make_service(store, clock).run_cleanup()

        assert report.reactors_failed == 1
        assert report.reactors_cleaned == 1
        assert report.telemetry[StreamKind.GAS] == 1
        assert report.errors[0] == "reactor 1: Store error during cleanup of reactor 1: lock timeout"


class TestAlertPurge:
    @pytest.mark.asyncio
    async def test_only_old_acknowledged_alerts_purged(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1))
        old_acked = await _add_alert(store, clock() - timedelta(days=91), acknowledged=True)
        old_open = await _add_alert(store, clock() - timedelta(days=200))
        fresh_acked = await _add_alert(store, clock() - timedelta(days=89), acknowledged=True)

        report = await _make_service(store, clock).run_cleanup()

        assert report.alerts == 1
        assert old_acked.alert_id not in store.alerts
        assert {old_open.alert_id, fresh_acked.alert_id} <= set(store.alerts)

    @pytest.mark.asyncio
    async def test_purge_runs_once_per_cleanup(self, store, clock):
        for reactor_id in (1, 2, 3):
            store.add_reactor(Reactor(reactor_id=reactor_id))
        store.delete_acknowledged_alerts_older_than = AsyncMock(return_value=0)

        await _make_service(store, clock).run_cleanup()

        store.delete_acknowledged_alerts_older_than.assert_awaited_once_with(clock() - timedelta(days=90))

    @pytest.mark.asyncio
    async def test_purge_failure_keeps_telemetry_counts(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=1))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=5)))
        store.delete_acknowledged_alerts_older_than = AsyncMock(side_effect=ConnectionError("db down"))

        report = await _make_service(store, clock).run_cleanup()

        assert report.telemetry_total == 1
        assert report.alerts == 0
        assert report.errors == ["alerts: Store error during acknowledged alert purge: db down"]


class TestManualCleanup:
    @pytest.mark.asyncio
    async def test_single_reactor(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=10))
        store.add_reactor(Reactor(reactor_id=2, data_retention_days=10))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=50)))
        store.add_sample(GasSample(reactor_id=2, timestamp=clock() - timedelta(days=50)))
        await _add_alert(store, clock() - timedelta(days=120), acknowledged=True)

        report = await _make_service(store, clock).cleanup_now(1)

        assert report.reactors_cleaned == 1
        assert report.telemetry[StreamKind.GAS] == 1
        assert report.alerts == 1
        assert len(store.samples[(2, StreamKind.GAS)]) == 1

    @pytest.mark.asyncio
    async def test_unknown_reactor(self, store, clock):
        with pytest.raises(ReactorNotFoundError):
            await _make_service(store, clock).cleanup_now(42)

    @pytest.mark.asyncio
    async def test_all_reactors(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1))
        store.add_reactor(Reactor(reactor_id=2))
        report = await _make_service(store, clock).cleanup_now()
        assert report.reactors_cleaned == 2


class TestStatsAndReport:
    @pytest.mark.asyncio
    async def test_cleanup_stats(self, store, clock):
        store.add_reactor(Reactor(reactor_id=1, reactor_name="Fermenter A", data_retention_days=30))
        store.add_reactor(Reactor(reactor_id=2))

        stats = await _make_service(store, clock, default_retention_days=180).get_cleanup_stats()

        assert stats[0] == {
            "reactor_id": 1,
            "reactor_name": "Fermenter A",
            "retention_days": 30,
            "cutoff_date": clock() - timedelta(days=30),
            "next_cleanup": None,
        }
        assert stats[1]["retention_days"] == 180

    def test_report_to_dict(self, clock):
        report = RetentionReport(started_at=clock())
        report.telemetry[StreamKind.GAS] = 3
        report.alerts = 2
        data = report.to_dict()
        assert data["deleted"] == {"dilution": 0, "gas": 3, "level_control": 0, "alerts": 2}
        assert report.total == 5

    def test_invalid_retention(self, store, clock):
        with pytest.raises(ValueError):
            _make_service(store, clock, default_retention_days=0)

    @pytest.mark.asyncio
    async def test_deleted_metrics(self, store, clock, metrics):
        store.add_reactor(Reactor(reactor_id=1, data_retention_days=1))
        store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(days=5)))

        await _make_service(store, clock, metrics=metrics).run_cleanup()

        assert metrics.retention_deleted_total.labels(category="gas")._value.get() == 1
