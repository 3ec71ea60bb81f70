"""
Scheduler - Periodic sweep orchestration

Handles:
- Monitoring sweep (every ALERT_CHECK_INTERVAL, default 2 min)
- Data retention cleanup (once at startup, then every
  DATA_RETENTION_CHECK_INTERVAL, default 24 h)

Both jobs share one AsyncIOScheduler owned by the runtime.

Guards:
- coalesce=True, max_instances=1, misfire_grace_time=300s
- explicit idle/running state per job: a tick that finds the previous sweep
  still running is skipped, logged and counted
- stop() removes the job and waits for an in-flight sweep, never cancels it
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import MonitoringConfig, RetentionConfig
from services.monitoring.reactor_monitor import ReactorMonitor, RuleResult, SweepReport
from services.retention.data_retention import DataRetentionService, RetentionReport
from shared.exceptions import SweepInProgressError
from shared.json_log_formatter import job_id_var

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {
    "coalesce": True,  # Merge missed runs
    "max_instances": 1,  # Prevent overlapping executions
    "misfire_grace_time": 300,  # 5 min grace for missed ticks
}


def create_scheduler() -> AsyncIOScheduler:
    """Scheduler partagé par les jobs d'un runtime"""
    return AsyncIOScheduler(timezone=timezone.utc)


class SweepState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PeriodicSweepScheduler(ABC):
    """
    Job périodique avec garde de non-chevauchement.

    Les sous-classes fournissent ``job_id``, ``job_name`` et ``_sweep()``.
    """

    job_id = "sweep"
    job_name = "Sweep"

    def __init__(self,
                 scheduler: AsyncIOScheduler,
                 interval_seconds: float,
                 run_on_start: bool = False,
                 metrics=None):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.metrics = metrics

        self._state = SweepState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._scheduled = False
        self._skipped_ticks = 0
        self._job_status: Dict[str, Any] = {}

    @abstractmethod
    async def _sweep(self):
        """Un passage complet ; la valeur retournée devient le rapport du job"""

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SweepState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SweepState.RUNNING

    @property
    def is_scheduled(self) -> bool:
        return self._scheduled

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    def next_run_time(self) -> Optional[datetime]:
        """Prochaine exécution planifiée, None si le job est arrêté"""
        if not self._scheduled:
            return None
        job = self.scheduler.get_job(self.job_id)
        if job is None:
            return None
        # Jobs en attente (scheduler pas encore démarré) n'ont pas d'horaire
        return getattr(job, "next_run_time", None)

    def _update_job_status(self, status: str, duration_ms: Optional[float] = None, error: Optional[str] = None):
        """Update job execution status"""
        self._job_status = {
            "last_run": datetime.now(timezone.utc).isoformat(),
            "status": status,
            "duration_ms": duration_ms,
            "error": error,
        }

    def get_job_status(self) -> Dict[str, Any]:
        status = dict(self._job_status)
        status.update({
            "job_id": self.job_id,
            "state": self._state.value,
            "scheduled": self._scheduled,
            "skipped_ticks": self._skipped_ticks,
            "next_run": self.next_run_time(),
        })
        return status

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self):
        # Pas de await entre le test d'état (appelant) et ce passage à RUNNING
        self._state = SweepState.RUNNING
        self._idle.clear()
        token = job_id_var.set(self.job_id)
        start = time.perf_counter()

        try:
            logger.info(f"[{self.job_id}] Starting {self.job_name}...")
            result = await self._sweep()
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            self._update_job_status("error", duration_ms, str(e))
            raise
        else:
            duration = time.perf_counter() - start
            self._update_job_status("success", duration * 1000)
            if self.metrics:
                self.metrics.record_sweep(self.job_id, duration, time.time())
            logger.info(f"[{self.job_id}] {self.job_name} completed in {duration * 1000:.0f}ms")
            return result
        finally:
            self._state = SweepState.IDLE
            self._idle.set()
            job_id_var.reset(token)

    async def _tick(self):
        """Point d'entrée du scheduler : jamais d'exception vers APScheduler"""
        if self.is_running:
            self._skipped_ticks += 1
            logger.warning(f"[{self.job_id}] Previous sweep still running, tick skipped "
                           f"({self._skipped_ticks} skipped so far)")
            if self.metrics:
                self.metrics.record_tick_skipped(self.job_id)
            return None

        try:
            return await self._execute()
        except Exception:
            logger.exception(f"[{self.job_id}] {self.job_name} failed")
            return None

    async def run_now(self):
        """
        Exécute un balayage complet hors planification.

        Raises:
            SweepInProgressError: si un balayage de ce job est en cours
        """
        if self.is_running:
            raise SweepInProgressError(self.job_id)
        return await self._execute()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._scheduled:
            logger.warning(f"[{self.job_id}] Already scheduled")
            return

        options = dict(JOB_DEFAULTS)
        if self.run_on_start:
            options["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name=self.job_name,
            replace_existing=True,
            **options
        )
        self._scheduled = True
        logger.info(f"[{self.job_id}] {self.job_name} scheduled every {self.interval_seconds:g}s")

    async def stop(self) -> None:
        """Annule les ticks futurs puis attend la fin du balayage en cours"""
        if self._scheduled:
            try:
                self.scheduler.remove_job(self.job_id)
            except JobLookupError:
                pass
            self._scheduled = False

        if self.is_running:
            logger.info(f"[{self.job_id}] Waiting for in-flight sweep to finish...")
        await self.wait_idle()
        logger.info(f"[{self.job_id}] {self.job_name} stopped")


class MonitoringScheduler(PeriodicSweepScheduler):
    """Balayage périodique des seuils"""

    job_id = "monitoring_sweep"
    job_name = "Threshold monitoring sweep"

    def __init__(self, monitor: ReactorMonitor, scheduler: AsyncIOScheduler,
                 config: Optional[MonitoringConfig] = None, metrics=None):
        config = config or MonitoringConfig()
        super().__init__(scheduler, config.check_interval_seconds, run_on_start=False, metrics=metrics)
        self.monitor = monitor

    async def _sweep(self) -> SweepReport:
        return await self.monitor.check_all_reactors()

    async def check_now(self, reactor_id: int) -> List[RuleResult]:
        """Réévaluation manuelle d'un réacteur, même logique que le balayage"""
        logger.info(f"Manual check requested for reactor {reactor_id}")
        return await self.monitor.check_reactor(reactor_id)

    async def check_all_now(self) -> SweepReport:
        return await self.run_now()


class RetentionScheduler(PeriodicSweepScheduler):
    """Nettoyage périodique, exécuté une première fois au démarrage"""

    job_id = "data_retention"
    job_name = "Data retention cleanup"

    def __init__(self, retention: DataRetentionService, scheduler: AsyncIOScheduler,
                 config: Optional[RetentionConfig] = None, metrics=None):
        config = config or RetentionConfig()
        super().__init__(scheduler, config.check_interval_seconds,
                         run_on_start=config.run_on_startup, metrics=metrics)
        self.retention = retention

    async def _sweep(self) -> RetentionReport:
        return await self.retention.run_cleanup()

    async def cleanup_now(self, reactor_id: Optional[int] = None) -> RetentionReport:
        """
        Nettoyage manuel.

        Raises:
            SweepInProgressError: nettoyage complet alors qu'un autre tourne
            ReactorNotFoundError: reactor_id inconnu
        """
        if reactor_id is None:
            return await self.run_now()
        return await self.retention.cleanup_now(reactor_id)

    async def get_cleanup_stats(self) -> List[Dict[str, Any]]:
        return await self.retention.get_cleanup_stats(self.next_run_time())
