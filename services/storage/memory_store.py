"""
Store en mémoire

Implémente tous les contrats de services.storage.contracts dans un seul
objet. Sert aux tests et aux exécutions locales sans base de données ; les
déploiements branchent leurs propres adaptateurs sur les mêmes contrats.

Expose aussi les opérations hors moteur (ajout de réacteurs, consignes,
échantillons, acquittement) pour pouvoir préparer un état.
"""

import itertools
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.alerts.alert_types import (
    Alert, AlertDraft, NotificationRecord, Reactor, Recipient, Setpoint
)
from services.telemetry.schema import StreamKind, TelemetrySample

logger = logging.getLogger(__name__)


class InMemoryMonitorStore:
    """Réacteurs, consignes, télémétrie, alertes et destinataires en mémoire"""

    def __init__(self):
        self.reactors: Dict[int, Reactor] = {}
        self.setpoints: Dict[int, Setpoint] = {}
        self.samples: Dict[tuple, List[TelemetrySample]] = defaultdict(list)
        self.alerts: Dict[int, Alert] = {}
        self.notifications: List[NotificationRecord] = []
        self.assignments: Dict[int, List[Recipient]] = defaultdict(list)

        self._alert_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Préparation de l'état (hors moteur)
    # ------------------------------------------------------------------

    def add_reactor(self, reactor: Reactor) -> Reactor:
        self.reactors[reactor.reactor_id] = reactor
        return reactor

    def add_setpoint(self, setpoint: Setpoint) -> Setpoint:
        self.setpoints[setpoint.setpoint_id] = setpoint
        return setpoint

    def add_sample(self, sample: TelemetrySample) -> TelemetrySample:
        self.samples[(sample.reactor_id, sample.stream_kind)].append(sample)
        return sample

    def assign_recipient(self, reactor_id: int, recipient: Recipient) -> None:
        self.assignments[reactor_id].append(recipient)

    def add_alert(self, alert: Alert) -> Alert:
        """Insère une alerte existante (historique, tests de rétention)"""
        self.alerts[alert.alert_id] = alert
        return alert

    def acknowledge_alert(self, alert_id: int, user_id: int,
                          acknowledged_at: Optional[datetime] = None) -> Optional[Alert]:
        alert = self.alerts.get(alert_id)
        if alert is None:
            return None
        updated = alert.model_copy(update={
            "is_acknowledged": True,
            "acknowledged_by": user_id,
            "acknowledged_at": acknowledged_at or datetime.now(timezone.utc),
        })
        self.alerts[alert_id] = updated
        return updated

    # ------------------------------------------------------------------
    # ReactorStore
    # ------------------------------------------------------------------

    async def list_active_reactors(self) -> List[Reactor]:
        return sorted((r for r in self.reactors.values() if r.is_active), key=lambda r: r.reactor_id)

    async def get_reactor(self, reactor_id: int) -> Optional[Reactor]:
        return self.reactors.get(reactor_id)

    # ------------------------------------------------------------------
    # SetpointStore
    # ------------------------------------------------------------------

    async def get_active_setpoints(self, reactor_id: int) -> List[Setpoint]:
        return [s for s in self.setpoints.values() if s.reactor_id == reactor_id and s.is_active]

    # ------------------------------------------------------------------
    # TelemetryStore
    # ------------------------------------------------------------------

    async def get_latest_sample(self, reactor_id: int, stream_kind: StreamKind) -> Optional[TelemetrySample]:
        samples = self.samples.get((reactor_id, StreamKind(stream_kind)))
        if not samples:
            return None
        return max(samples, key=lambda s: s.timestamp)

    async def delete_telemetry_older_than(self, reactor_id: int, stream_kind: StreamKind,
                                          cutoff: datetime) -> int:
        key = (reactor_id, StreamKind(stream_kind))
        samples = self.samples.get(key, [])
        kept = [s for s in samples if s.timestamp >= cutoff]
        deleted = len(samples) - len(kept)
        if key in self.samples:
            self.samples[key] = kept
        return deleted

    # ------------------------------------------------------------------
    # AlertStore
    # ------------------------------------------------------------------

    async def get_recent_unacknowledged_alerts(self, reactor_id: int, limit: int) -> List[Alert]:
        alerts = [a for a in self.alerts.values() if a.reactor_id == reactor_id and not a.is_acknowledged]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts[:limit]

    async def create_alert(self, draft: AlertDraft) -> Alert:
        alert = Alert.from_draft(draft, alert_id=next(self._alert_ids))
        self.alerts[alert.alert_id] = alert
        return alert

    async def record_notification(self, alert_id: int, user_id: int, channel: str) -> None:
        self.notifications.append(NotificationRecord(alert_id=alert_id, user_id=user_id, channel=channel))

    async def delete_acknowledged_alerts_older_than(self, cutoff: datetime) -> int:
        expired = [a.alert_id for a in self.alerts.values() if a.is_acknowledged and a.is_older_than(cutoff)]
        for alert_id in expired:
            del self.alerts[alert_id]
        return len(expired)

    # ------------------------------------------------------------------
    # RecipientDirectory
    # ------------------------------------------------------------------

    async def get_assigned_recipients(self, reactor_id: int) -> List[Recipient]:
        return list(self.assignments.get(reactor_id, []))

    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "storage_mode": "in_memory",
            "reactors": len(self.reactors),
            "setpoints": len(self.setpoints),
            "samples": sum(len(v) for v in self.samples.values()),
            "alerts": len(self.alerts),
            "notifications": len(self.notifications),
        }
