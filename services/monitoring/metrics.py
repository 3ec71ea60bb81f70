"""
Métriques Prometheus du pipeline de surveillance et de rétention.

Le core n'a pas d'appelant API : une alerte manquante ou en retard n'est
visible qu'ici et dans les logs.
"""

from prometheus_client import Counter, Gauge, Histogram, REGISTRY


class MonitorMetrics:
    """Prometheus metrics collector for the Bio-Monitor core"""

    def __init__(self, registry=None):
        if registry is None:
            registry = REGISTRY

        # Alert generation
        self.alerts_created_total = Counter(
            'biomonitor_alerts_created_total',
            'Total number of alerts created',
            ['severity', 'stream_kind'],
            registry=registry
        )

        self.violations_suppressed_total = Counter(
            'biomonitor_violations_suppressed_total',
            'Violations not turned into alerts',
            ['reason'],
            registry=registry
        )

        self.rule_outcomes_total = Counter(
            'biomonitor_rule_outcomes_total',
            'Rule evaluation outcomes',
            ['outcome'],
            registry=registry
        )

        self.evaluation_errors_total = Counter(
            'biomonitor_evaluation_errors_total',
            'Errors while evaluating a reactor or a rule',
            ['scope'],
            registry=registry
        )

        # Fan-out
        self.realtime_publish_failures_total = Counter(
            'biomonitor_realtime_publish_failures_total',
            'Failed real-time publications',
            ['topic_kind'],
            registry=registry
        )

        self.notifications_total = Counter(
            'biomonitor_notifications_total',
            'Notification attempts',
            ['channel', 'result'],
            registry=registry
        )

        # Retention
        self.retention_deleted_total = Counter(
            'biomonitor_retention_deleted_rows_total',
            'Rows deleted by the retention sweep',
            ['category'],
            registry=registry
        )

        # Scheduling
        self.sweep_duration = Histogram(
            'biomonitor_sweep_duration_seconds',
            'Duration of a sweep',
            ['job'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
            registry=registry
        )

        self.sweep_last_run_timestamp = Gauge(
            'biomonitor_sweep_last_run_timestamp_seconds',
            'Unix timestamp of the last completed sweep',
            ['job'],
            registry=registry
        )

        self.sweep_ticks_skipped_total = Counter(
            'biomonitor_sweep_ticks_skipped_total',
            'Ticks skipped because the previous sweep was still running',
            ['job'],
            registry=registry
        )

    def record_alert_created(self, severity: str, stream_kind: str):
        self.alerts_created_total.labels(severity=severity, stream_kind=stream_kind).inc()

    def record_violation_suppressed(self, reason: str):
        self.violations_suppressed_total.labels(reason=reason).inc()

    def record_rule_outcome(self, outcome: str):
        self.rule_outcomes_total.labels(outcome=outcome).inc()

    def record_evaluation_error(self, scope: str):
        self.evaluation_errors_total.labels(scope=scope).inc()

    def record_publish_failure(self, topic_kind: str):
        self.realtime_publish_failures_total.labels(topic_kind=topic_kind).inc()

    def record_notification(self, channel: str, result: str):
        self.notifications_total.labels(channel=channel, result=result).inc()

    def record_retention_deleted(self, category: str, count: int):
        if count:
            self.retention_deleted_total.labels(category=category).inc(count)

    def record_sweep(self, job: str, duration_seconds: float, finished_at: float):
        self.sweep_duration.labels(job=job).observe(duration_seconds)
        self.sweep_last_run_timestamp.labels(job=job).set(finished_at)

    def record_tick_skipped(self, job: str):
        self.sweep_ticks_skipped_total.labels(job=job).inc()


# Global instance - created on first use
monitor_metrics = None


def get_monitor_metrics(registry=None) -> MonitorMetrics:
    """Get or create the metrics instance"""
    global monitor_metrics
    if registry is not None:
        # Fresh instance for tests with a custom registry
        return MonitorMetrics(registry=registry)

    # Default registry rejects duplicated timeseries, reuse the instance
    if monitor_metrics is None:
        monitor_metrics = MonitorMetrics()
    return monitor_metrics
