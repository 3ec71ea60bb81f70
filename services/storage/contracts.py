"""
Interfaces des collaborateurs externes

Le moteur consomme ces contrats ; la persistance (schéma, migrations, SQL)
est hors périmètre. Chaque méthode est un point de suspension : aucune
ressource exclusive n'est tenue pendant l'appel.

Les implémentations signalent les incidents réseau/DB par
TransientStoreError (ou toute exception : le balayage les isole de la même
façon).
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from services.alerts.alert_types import Alert, AlertDraft, Reactor, Recipient, Setpoint
from services.telemetry.schema import StreamKind, TelemetrySample


@runtime_checkable
class ReactorStore(Protocol):
    async def list_active_reactors(self) -> List[Reactor]:
        ...

    async def get_reactor(self, reactor_id: int) -> Optional[Reactor]:
        ...


@runtime_checkable
class SetpointStore(Protocol):
    async def get_active_setpoints(self, reactor_id: int) -> List[Setpoint]:
        ...


@runtime_checkable
class TelemetryStore(Protocol):
    async def get_latest_sample(self, reactor_id: int, stream_kind: StreamKind) -> Optional[TelemetrySample]:
        ...

    async def delete_telemetry_older_than(self, reactor_id: int, stream_kind: StreamKind,
                                          cutoff: datetime) -> int:
        """Supprime les échantillons strictement antérieurs à cutoff."""
        ...


@runtime_checkable
class AlertStore(Protocol):
    async def get_recent_unacknowledged_alerts(self, reactor_id: int, limit: int) -> List[Alert]:
        """Alertes non acquittées du réacteur, les plus récentes d'abord."""
        ...

    async def create_alert(self, draft: AlertDraft) -> Alert:
        ...

    async def record_notification(self, alert_id: int, user_id: int, channel: str) -> None:
        ...

    async def delete_acknowledged_alerts_older_than(self, cutoff: datetime) -> int:
        """Supprime les alertes acquittées créées strictement avant cutoff."""
        ...


@runtime_checkable
class RecipientDirectory(Protocol):
    async def get_assigned_recipients(self, reactor_id: int) -> List[Recipient]:
        ...
