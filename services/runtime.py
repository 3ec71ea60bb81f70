"""
Runtime wiring

Construit une fois, au démarrage, tout le pipeline :
canal temps réel -> dispatcher -> sink -> monitor -> rétention -> schedulers.
Le canal temps réel est passé explicitement à chaque consommateur.

Usage:
    async with MonitorRuntime(settings, MonitorStores.single(store)) as runtime:
        await runtime.monitoring.check_now(reactor_id)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import Settings, get_settings
from services.alerts.alert_sink import AlertSink
from services.alerts.deduplication import DeduplicationGuard
from services.alerts.severity import SeverityClassifier
from services.monitoring.metrics import MonitorMetrics, get_monitor_metrics
from services.monitoring.reactor_monitor import ReactorMonitor
from services.notifications.dispatcher import NotificationDispatcher
from services.notifications.email_notifier import NotificationChannel, build_email_notifier
from services.retention.data_retention import DataRetentionService
from services.scheduler import MonitoringScheduler, RetentionScheduler, create_scheduler
from services.storage.contracts import AlertStore, ReactorStore, RecipientDirectory, SetpointStore, TelemetryStore
from services.streaming.realtime_channel import RealtimeChannel, build_realtime_channel
from shared.logging_setup import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class MonitorStores:
    """Collaborateurs de persistance consommés par le moteur"""
    reactors: ReactorStore
    setpoints: SetpointStore
    telemetry: TelemetryStore
    alerts: AlertStore
    recipients: RecipientDirectory

    @classmethod
    def single(cls, store) -> "MonitorStores":
        """Un seul objet implémentant tous les contrats (ex. InMemoryMonitorStore)"""
        return cls(reactors=store, setpoints=store, telemetry=store, alerts=store, recipients=store)


class MonitorRuntime:
    """Assemble et pilote le moteur de surveillance et de rétention"""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 stores: Optional[MonitorStores] = None,
                 realtime: Optional[RealtimeChannel] = None,
                 notifier: Optional[NotificationChannel] = None,
                 metrics: Optional[MonitorMetrics] = None,
                 clock=None):
        if stores is None:
            raise ValueError("MonitorRuntime requires the external stores")

        self.settings = settings or get_settings()
        self.stores = stores
        self.metrics = metrics or get_monitor_metrics()
        self.realtime = realtime if realtime is not None else build_realtime_channel(self.settings.realtime)
        self._owns_realtime = realtime is None

        monitoring_config = self.settings.monitoring
        clock_kwargs = {"clock": clock} if clock is not None else {}

        self.dispatcher = None
        if monitoring_config.email_enabled:
            # Settings garantit EMAIL_HOST quand les e-mails sont activés
            channel = notifier or build_email_notifier(self.settings.email)
            self.dispatcher = NotificationDispatcher(
                reactor_store=stores.reactors,
                recipients=stores.recipients,
                alert_store=stores.alerts,
                channel=channel,
                max_concurrency=self.settings.email.max_concurrency,
                metrics=self.metrics,
            )

        self.sink = AlertSink(
            alert_store=stores.alerts,
            realtime=self.realtime,
            realtime_config=self.settings.realtime,
            dispatcher=self.dispatcher,
            notifications_enabled=monitoring_config.email_enabled,
            metrics=self.metrics,
        )

        self.monitor = ReactorMonitor(
            reactor_store=stores.reactors,
            setpoint_store=stores.setpoints,
            telemetry_store=stores.telemetry,
            alert_store=stores.alerts,
            sink=self.sink,
            classifier=SeverityClassifier(monitoring_config.critical_deviation_pct),
            dedup_guard=DeduplicationGuard(monitoring_config.dedup_window_delta, monitoring_config.dedup_lookback),
            metrics=self.metrics,
            **clock_kwargs
        )

        self.retention = DataRetentionService(
            reactor_store=stores.reactors,
            telemetry_store=stores.telemetry,
            alert_store=stores.alerts,
            default_retention_days=self.settings.retention.default_days,
            alert_retention_days=self.settings.retention.alert_retention_days,
            metrics=self.metrics,
            **clock_kwargs
        )

        self.scheduler = create_scheduler()
        self.monitoring = MonitoringScheduler(self.monitor, self.scheduler, monitoring_config, self.metrics)
        self.retention_scheduler = RetentionScheduler(self.retention, self.scheduler,
                                                      self.settings.retention, self.metrics)
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            logger.warning("Monitor runtime already started")
            return

        configure_logging(self.settings.logging)

        self.monitoring.start()
        self.retention_scheduler.start()
        self.scheduler.start()
        self._started = True

        logger.info(f"Monitor runtime started (monitoring every {self.settings.monitoring.check_interval}ms, "
                    f"retention every {self.settings.retention.check_interval}ms, "
                    f"email {'enabled' if self.settings.monitoring.email_enabled else 'disabled'})")

    async def stop(self) -> None:
        """Arrêt gracieux : plus de ticks, les balayages en cours se terminent"""
        if not self._started:
            return

        await self.monitoring.stop()
        await self.retention_scheduler.stop()
        # Les jobs sont retirés et inactifs, l'executor n'a plus rien à annuler
        self.scheduler.shutdown(wait=False)
        self._started = False

        if self._owns_realtime and hasattr(self.realtime, "close"):
            await self.realtime.close()

        logger.info("Monitor runtime stopped")

    def get_status(self) -> dict:
        return {
            "started": self._started,
            "deduplication": self.monitor.dedup_guard.get_stats(),
            "jobs": {
                self.monitoring.job_id: self.monitoring.get_job_status(),
                self.retention_scheduler.job_id: self.retention_scheduler.get_job_status(),
            },
        }

    async def __aenter__(self) -> "MonitorRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
