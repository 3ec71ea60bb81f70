"""
Data Retention - politique de cycle de vie des données par réacteur

Deux horloges indépendantes :
- télémétrie : par réacteur, cutoff = now - rétention du réacteur (ou défaut
  global), suppression stricte (< cutoff) pour chaque type de flux
- alertes : purge globale des alertes ACQUITTÉES créées il y a plus de
  alert_retention_days (90 j), une seule fois par nettoyage. Les alertes non
  acquittées ne sont jamais supprimées, quel que soit leur âge.

Un échec sur un réacteur est logué et n'interrompt pas le nettoyage des
autres.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from services.alerts.alert_types import Reactor
from services.storage.contracts import AlertStore, ReactorStore, TelemetryStore
from services.telemetry.schema import StreamKind
from shared.exceptions import ReactorNotFoundError, convert_standard_exception

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 365
DEFAULT_ALERT_RETENTION_DAYS = 90


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RetentionReport:
    """Lignes supprimées par catégorie"""
    started_at: datetime
    telemetry: Dict[StreamKind, int] = field(default_factory=lambda: {k: 0 for k in StreamKind})
    alerts: int = 0
    reactors_cleaned: int = 0
    reactors_failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def telemetry_total(self) -> int:
        return sum(self.telemetry.values())

    @property
    def total(self) -> int:
        return self.telemetry_total + self.alerts

    def to_dict(self) -> Dict[str, Any]:
        deleted = {kind.value: count for kind, count in self.telemetry.items()}
        deleted["alerts"] = self.alerts
        return {
            "started_at": self.started_at.isoformat(),
            "deleted": deleted,
            "reactors_cleaned": self.reactors_cleaned,
            "reactors_failed": self.reactors_failed,
            "errors": list(self.errors),
            "duration_seconds": round(self.duration_seconds, 3),
        }


class DataRetentionService:
    """Nettoyage de la télémétrie et des alertes acquittées expirées"""

    def __init__(self,
                 reactor_store: ReactorStore,
                 telemetry_store: TelemetryStore,
                 alert_store: AlertStore,
                 default_retention_days: int = DEFAULT_RETENTION_DAYS,
                 alert_retention_days: int = DEFAULT_ALERT_RETENTION_DAYS,
                 clock: Callable[[], datetime] = utc_now,
                 metrics=None):
        if default_retention_days < 1 or alert_retention_days < 1:
            raise ValueError("Retention periods must be >= 1 day")
        self.reactor_store = reactor_store
        self.telemetry_store = telemetry_store
        self.alert_store = alert_store
        self.default_retention_days = default_retention_days
        self.alert_retention_days = alert_retention_days
        self.clock = clock
        self.metrics = metrics

    def retention_days_for(self, reactor: Reactor) -> int:
        return reactor.data_retention_days or self.default_retention_days

    def cutoff_for(self, reactor: Reactor, now: Optional[datetime] = None) -> datetime:
        now = now or self.clock()
        return now - timedelta(days=self.retention_days_for(reactor))

    async def cleanup_reactor_data(self, reactor: Reactor, report: RetentionReport,
                                   now: Optional[datetime] = None) -> None:
        """
        Supprime la télémétrie expirée d'un réacteur, type de flux par type de flux.

        Les compteurs sont ajoutés au rapport au fil de l'eau ; une erreur
        remonte à l'appelant après les types déjà traités.
        """
        retention_days = self.retention_days_for(reactor)
        cutoff = self.cutoff_for(reactor, now)
        logger.info(f"Cleaning data for reactor {reactor.reactor_id} ({reactor.display_name}): "
                    f"keeping last {retention_days} days")

        deleted = {}
        for kind in StreamKind:
            count = await self.telemetry_store.delete_telemetry_older_than(reactor.reactor_id, kind, cutoff)
            report.telemetry[kind] += count
            deleted[kind.value] = count
            if self.metrics:
                self.metrics.record_retention_deleted(kind.value, count)

        if any(deleted.values()):
            logger.info(f"Reactor {reactor.reactor_id} cleanup: {deleted}")

    async def purge_acknowledged_alerts(self, report: RetentionReport, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        cutoff = now - timedelta(days=self.alert_retention_days)
        count = await self.alert_store.delete_acknowledged_alerts_older_than(cutoff)
        report.alerts += count
        if self.metrics:
            self.metrics.record_retention_deleted("alerts", count)
        if count:
            logger.info(f"Purged {count} acknowledged alerts older than {self.alert_retention_days} days")
        return count

    async def run_cleanup(self) -> RetentionReport:
        """Nettoyage complet : tous les réacteurs actifs puis la purge des alertes"""
        now = self.clock()
        report = RetentionReport(started_at=now)
        start = time.perf_counter()
        logger.info("Starting data retention cleanup...")

        reactors = await self.reactor_store.list_active_reactors()
        for reactor in reactors:
            try:
                await self.cleanup_reactor_data(reactor, report, now)
                report.reactors_cleaned += 1
            except Exception as e:
                error = convert_standard_exception(e, f"cleanup of reactor {reactor.reactor_id}")
                report.reactors_failed += 1
                report.errors.append(f"reactor {reactor.reactor_id}: {error.message}")
                logger.error(f"Error cleaning reactor {reactor.reactor_id}: {error.message}")

        try:
            await self.purge_acknowledged_alerts(report, now)
        except Exception as e:
            error = convert_standard_exception(e, "acknowledged alert purge")
            report.errors.append(f"alerts: {error.message}")
            logger.error(f"Error purging acknowledged alerts: {error.message}")

        report.duration_seconds = time.perf_counter() - start
        logger.info(f"Data retention cleanup completed: {report.to_dict()['deleted']}")
        return report

    async def cleanup_now(self, reactor_id: Optional[int] = None) -> RetentionReport:
        """
        Nettoyage manuel, synchrone.

        Args:
            reactor_id: réacteur à nettoyer, ou None pour tous

        Raises:
            ReactorNotFoundError: si reactor_id est inconnu
        """
        if reactor_id is None:
            return await self.run_cleanup()

        reactor = await self.reactor_store.get_reactor(reactor_id)
        if reactor is None:
            raise ReactorNotFoundError(reactor_id)

        now = self.clock()
        report = RetentionReport(started_at=now)
        start = time.perf_counter()

        await self.cleanup_reactor_data(reactor, report, now)
        report.reactors_cleaned = 1
        await self.purge_acknowledged_alerts(report, now)

        report.duration_seconds = time.perf_counter() - start
        logger.info(f"Manual cleanup for reactor {reactor_id}: {report.to_dict()['deleted']}")
        return report

    async def get_cleanup_stats(self, next_cleanup: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Rétention effective et cutoff courant de chaque réacteur actif"""
        now = self.clock()
        stats = []
        for reactor in await self.reactor_store.list_active_reactors():
            stats.append({
                "reactor_id": reactor.reactor_id,
                "reactor_name": reactor.reactor_name,
                "retention_days": self.retention_days_for(reactor),
                "cutoff_date": self.cutoff_for(reactor, now),
                "next_cleanup": next_cleanup,
            })
        return stats
