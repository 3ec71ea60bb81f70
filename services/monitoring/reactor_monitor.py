"""
Reactor Monitor - balayage des seuils sur tous les réacteurs actifs

Pour chaque réacteur actif, pour chaque consigne active (ordre stable :
type de flux puis champ), lit le dernier échantillon du type de flux,
classe la valeur, filtre les doublons puis transmet à l'AlertSink.

Isolation des erreurs :
- une erreur sur une consigne est loguée, la consigne suivante est évaluée
- une erreur sur un réacteur est loguée, le réacteur suivant est évalué
Aucune erreur ne remonte jusqu'à interrompre le balayage complet.

"Télémétrie indisponible" et "valeur dans la plage" sont deux issues
distinctes (logs et métriques séparés).
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from services.alerts.alert_sink import AlertSink, build_alert_message
from services.alerts.alert_types import AlertDraft, Setpoint
from services.alerts.deduplication import DeduplicationGuard
from services.alerts.severity import SeverityClassifier
from services.storage.contracts import AlertStore, ReactorStore, SetpointStore, TelemetryStore
from services.telemetry.schema import StreamKind, TelemetrySample
from shared.exceptions import convert_standard_exception

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _code(error) -> str:
    return error.error_code.value if error.error_code else "UNKNOWN"


class RuleOutcome(str, Enum):
    """Issue de l'évaluation d'une consigne"""
    ALERT_CREATED = "alert_created"
    IN_RANGE = "in_range"
    DATA_UNAVAILABLE = "data_unavailable"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    ERROR = "error"


@dataclass
class RuleResult:
    setpoint_id: int
    stream_kind: StreamKind
    field_name: str
    outcome: RuleOutcome
    alert_id: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class SweepReport:
    """Bilan d'un balayage complet"""
    started_at: datetime
    reactors_checked: int = 0
    reactors_failed: int = 0
    outcomes: Dict[RuleOutcome, int] = field(default_factory=lambda: {o: 0 for o in RuleOutcome})
    alert_ids: List[int] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def alerts_created(self) -> int:
        return len(self.alert_ids)

    def add(self, result: RuleResult) -> None:
        self.outcomes[result.outcome] += 1
        if result.alert_id is not None:
            self.alert_ids.append(result.alert_id)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "reactors_checked": self.reactors_checked,
            "reactors_failed": self.reactors_failed,
            "outcomes": {o.value: n for o, n in self.outcomes.items()},
            "alerts_created": self.alerts_created,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class _SampleCache:
    """Dernier échantillon par type de flux, lu au plus une fois par réacteur et par balayage"""

    def __init__(self, telemetry: TelemetryStore, reactor_id: int):
        self.telemetry = telemetry
        self.reactor_id = reactor_id
        self._samples: Dict[StreamKind, Optional[TelemetrySample]] = {}
        self._errors: Dict[StreamKind, Exception] = {}

    async def get(self, stream_kind: StreamKind) -> Optional[TelemetrySample]:
        if stream_kind in self._errors:
            raise self._errors[stream_kind]
        if stream_kind not in self._samples:
            try:
                self._samples[stream_kind] = await self.telemetry.get_latest_sample(self.reactor_id, stream_kind)
            except Exception as e:
                self._errors[stream_kind] = e
                raise
        return self._samples[stream_kind]


class ReactorMonitor:
    """Évalue les consignes actives de chaque réacteur contre sa dernière télémétrie"""

    def __init__(self,
                 reactor_store: ReactorStore,
                 setpoint_store: SetpointStore,
                 telemetry_store: TelemetryStore,
                 alert_store: AlertStore,
                 sink: AlertSink,
                 classifier: Optional[SeverityClassifier] = None,
                 dedup_guard: Optional[DeduplicationGuard] = None,
                 clock: Callable[[], datetime] = utc_now,
                 metrics=None):
        self.reactor_store = reactor_store
        self.setpoint_store = setpoint_store
        self.telemetry_store = telemetry_store
        self.alert_store = alert_store
        self.sink = sink
        self.classifier = classifier or SeverityClassifier()
        self.dedup_guard = dedup_guard or DeduplicationGuard()
        self.clock = clock
        self.metrics = metrics

    async def check_all_reactors(self) -> SweepReport:
        """Balaye tous les réacteurs actifs, séquentiellement"""
        report = SweepReport(started_at=self.clock())
        start = time.perf_counter()

        reactors = await self.reactor_store.list_active_reactors()

        for reactor in reactors:
            try:
                results = await self.check_reactor(reactor.reactor_id)
            except Exception as e:
                error = convert_standard_exception(e, f"check of reactor {reactor.reactor_id}")
                report.reactors_failed += 1
                logger.error(f"Error checking reactor {reactor.reactor_id} [{_code(error)}]: {error.message}")
                if self.metrics:
                    self.metrics.record_evaluation_error("reactor")
                continue

            report.reactors_checked += 1
            for result in results:
                report.add(result)

        report.duration_seconds = time.perf_counter() - start
        logger.info(f"Monitoring sweep done: {report.reactors_checked} reactors checked, "
                    f"{report.reactors_failed} failed, {report.alerts_created} alerts created "
                    f"in {report.duration_seconds:.3f}s")
        return report

    async def check_reactor(self, reactor_id: int) -> List[RuleResult]:
        """
        Évalue toutes les consignes actives d'un réacteur.

        Les erreurs par consigne sont isolées dans les résultats ; une erreur
        de lecture des consignes remonte à l'appelant.
        """
        setpoints = await self.setpoint_store.get_active_setpoints(reactor_id)
        if not setpoints:
            logger.debug(f"No active setpoints for reactor {reactor_id}")
            return []

        samples = _SampleCache(self.telemetry_store, reactor_id)
        results = []

        for setpoint in sorted(setpoints, key=lambda s: s.sort_key):
            try:
                result = await self._evaluate_rule(reactor_id, setpoint, samples)
            except Exception as e:
                error = convert_standard_exception(e, f"setpoint {setpoint.setpoint_id}")
                logger.error(f"Error checking setpoint {setpoint.setpoint_id} "
                             f"({setpoint.stream_kind.value}.{setpoint.field_name}) on reactor {reactor_id} "
                             f"[{_code(error)}]: {error.message}")
                if self.metrics:
                    self.metrics.record_evaluation_error("rule")
                result = RuleResult(setpoint.setpoint_id, setpoint.stream_kind, setpoint.field_name,
                                    RuleOutcome.ERROR, error=error.message,
                                    error_code=_code(error))

            if self.metrics:
                self.metrics.record_rule_outcome(result.outcome.value)
            results.append(result)

        return results

    async def _evaluate_rule(self, reactor_id: int, setpoint: Setpoint, samples: _SampleCache) -> RuleResult:
        def outcome(kind: RuleOutcome, alert_id: Optional[int] = None) -> RuleResult:
            return RuleResult(setpoint.setpoint_id, setpoint.stream_kind, setpoint.field_name, kind, alert_id)

        sample = await samples.get(setpoint.stream_kind)
        value = sample.value_of(setpoint.field_name) if sample is not None else None
        if value is None:
            logger.debug(f"Telemetry unavailable for reactor {reactor_id} "
                         f"{setpoint.stream_kind.value}.{setpoint.field_name}")
            return outcome(RuleOutcome.DATA_UNAVAILABLE)

        violation = self.classifier.evaluate(setpoint, value)
        if violation is None:
            logger.debug(f"Reactor {reactor_id} {setpoint.field_name}={value} in range")
            return outcome(RuleOutcome.IN_RANGE)

        now = self.clock()
        recent = await self.alert_store.get_recent_unacknowledged_alerts(reactor_id, self.dedup_guard.lookback)
        if self.dedup_guard.is_duplicate(reactor_id, setpoint.field_name, violation.threshold_type, recent, now):
            if self.metrics:
                self.metrics.record_violation_suppressed("duplicate")
            return outcome(RuleOutcome.DUPLICATE_SUPPRESSED)

        draft = AlertDraft(
            reactor_id=reactor_id,
            setpoint_id=setpoint.setpoint_id,
            stream_kind=setpoint.stream_kind,
            field_name=setpoint.field_name,
            current_value=value,
            threshold_value=violation.threshold_value,
            threshold_type=violation.threshold_type,
            severity=violation.severity,
            message=build_alert_message(setpoint.field_name, value,
                                        violation.threshold_value, violation.threshold_type),
            created_at=now,
        )
        alert = await self.sink.emit(draft)
        return outcome(RuleOutcome.ALERT_CREATED, alert.alert_id)
