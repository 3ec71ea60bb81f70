"""
Tests for services/runtime.py - wiring and lifecycle of the monitoring core.
"""
import asyncio
import logging
from unittest.mock import patch

import pytest

from config.settings import (
    EmailConfig,
    LoggingConfig,
    MonitoringConfig,
    RealtimeConfig,
    RetentionConfig,
    Settings,
)
from services.alerts.alert_types import Recipient
from services.notifications.email_notifier import EmailNotifier
from services.runtime import MonitorRuntime, MonitorStores
from shared.json_log_formatter import JsonLogFormatter


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _settings(email_enabled=False, run_on_startup=True, log_level="INFO", log_format="text"):
    return Settings(
        environment="test",
        logging=LoggingConfig(log_level=log_level, log_format=log_format),
        monitoring=MonitoringConfig(check_interval=60000, dedup_window=120000, email_enabled=email_enabled),
        retention=RetentionConfig(run_on_startup=run_on_startup, default_days=30),
        email=EmailConfig(host="smtp.example.org", from_address="monitor@example.org"),
        realtime=RealtimeConfig(redis_url=None),
    )


def _runtime(store, realtime, clock, metrics, notifier=None, **settings_kwargs):
    return MonitorRuntime(_settings(**settings_kwargs), MonitorStores.single(store),
                          realtime=realtime, notifier=notifier, metrics=metrics, clock=clock)


class TestWiring:
    def test_requires_stores(self):
        with pytest.raises(ValueError):
            MonitorRuntime(_settings())

    @pytest.mark.asyncio
    async def test_email_disabled_builds_no_dispatcher(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics)
        assert runtime.dispatcher is None
        assert runtime.sink.realtime is realtime
        assert runtime.monitor.dedup_guard.window.total_seconds() == 120
        assert runtime.retention.default_retention_days == 30

    @pytest.mark.asyncio
    async def test_email_enabled_uses_given_channel(self, store, realtime, clock, metrics, notifier):
        runtime = _runtime(store, realtime, clock, metrics, notifier=notifier, email_enabled=True)
        assert runtime.dispatcher is not None
        assert runtime.dispatcher.channel is notifier

    @pytest.mark.asyncio
    async def test_email_enabled_builds_smtp_channel(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics, email_enabled=True)
        assert isinstance(runtime.dispatcher.channel, EmailNotifier)
        assert runtime.dispatcher.channel.config.host == "smtp.example.org"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_manual_sweep_alerts_publishes_and_notifies(self, seeded_store, realtime, clock,
                                                             metrics, notifier):
        seeded_store.assign_recipient(1, Recipient(user_id=7, email="ops@example.org"))
        runtime = _runtime(seeded_store, realtime, clock, metrics, notifier=notifier, email_enabled=True)

        report = await runtime.monitoring.check_all_now()

        assert report.alerts_created == 1
        assert realtime.topics() == ["reactor:1", "admin"]
        assert [r.email for r, _ in notifier.sent] == ["ops@example.org"]
        assert seeded_store.notifications[0].user_id == 7

    @pytest.mark.asyncio
    async def test_manual_reactor_check_uses_dedup(self, seeded_store, realtime, clock, metrics):
        runtime = _runtime(seeded_store, realtime, clock, metrics)

        await runtime.monitoring.check_now(1)
        clock.advance(seconds=90)
        results = await runtime.monitoring.check_now(1)

        assert results[0].outcome.value == "duplicate_suppressed"
        assert len(seeded_store.alerts) == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_installs_logging_config(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics, run_on_startup=False,
                           log_level="DEBUG", log_format="json")

        await runtime.start()
        await runtime.stop()

        root = logging.getLogger()
        ours = [h for h in root.handlers if getattr(h, "_biomonitor", False)]
        assert len(ours) == 1
        assert isinstance(ours[0].formatter, JsonLogFormatter)
        assert root.level == logging.DEBUG

    @pytest.mark.asyncio
    async def test_logging_configured_before_scheduler_starts(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics, run_on_startup=False)
        seen = []

        with patch("services.runtime.configure_logging",
                   side_effect=lambda config: seen.append((config, runtime.scheduler.running))) as configure:
            await runtime.start()
            await runtime.stop()

        configure.assert_called_once()
        assert seen == [(runtime.settings.logging, False)]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics, run_on_startup=False)

        await runtime.start()
        assert runtime.is_started
        assert runtime.monitoring.is_scheduled
        assert runtime.retention_scheduler.is_scheduled
        assert runtime.monitoring.next_run_time() is not None

        await runtime.stop()
        assert not runtime.is_started
        assert not runtime.monitoring.is_scheduled
        assert runtime.monitoring.next_run_time() is None

    @pytest.mark.asyncio
    async def test_retention_runs_once_at_startup(self, store, realtime, clock, metrics):
        async with _runtime(store, realtime, clock, metrics) as runtime:
            for _ in range(100):
                if runtime.retention_scheduler.get_job_status().get("status"):
                    break
                await asyncio.sleep(0.02)

            assert runtime.retention_scheduler.get_job_status()["status"] == "success"

        assert not runtime.is_started

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics)
        await runtime.stop()
        assert not runtime.is_started

    @pytest.mark.asyncio
    async def test_status(self, store, realtime, clock, metrics):
        runtime = _runtime(store, realtime, clock, metrics)
        status = runtime.get_status()
        assert status["started"] is False
        assert set(status["jobs"]) == {"monitoring_sweep", "data_retention"}
        assert status["deduplication"] == {"window_seconds": 120.0, "lookback": 10}
