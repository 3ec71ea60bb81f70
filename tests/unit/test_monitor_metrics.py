"""Tests unitaires pour services/monitoring/metrics.py."""
from prometheus_client import CollectorRegistry

from services.monitoring.metrics import MonitorMetrics, get_monitor_metrics


def test_counters_use_custom_registry(registry, metrics):
    metrics.record_alert_created("critical", "gas")
    metrics.record_alert_created("critical", "gas")

    value = registry.get_sample_value(
        'biomonitor_alerts_created_total', {'severity': 'critical', 'stream_kind': 'gas'})
    assert value == 2


def test_zero_deletions_not_recorded(registry, metrics):
    metrics.record_retention_deleted("gas", 0)
    metrics.record_retention_deleted("alerts", 4)

    assert registry.get_sample_value('biomonitor_retention_deleted_rows_total', {'category': 'gas'}) is None
    assert registry.get_sample_value('biomonitor_retention_deleted_rows_total', {'category': 'alerts'}) == 4


def test_record_sweep(registry, metrics):
    metrics.record_sweep("data_retention", 0.2, 1700000000.0)

    assert registry.get_sample_value('biomonitor_sweep_duration_seconds_count', {'job': 'data_retention'}) == 1
    assert registry.get_sample_value(
        'biomonitor_sweep_last_run_timestamp_seconds', {'job': 'data_retention'}) == 1700000000.0


def test_get_monitor_metrics_with_registry_is_fresh():
    first = get_monitor_metrics(CollectorRegistry())
    second = get_monitor_metrics(CollectorRegistry())
    assert isinstance(first, MonitorMetrics)
    assert first is not second
