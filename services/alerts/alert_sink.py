"""
Alert sink : seul point de création des alertes.

Ordre des opérations pour une violation validée et non dupliquée :
1. persister l'alerte (un échec interrompt tout, rien n'est publié)
2. publier sur le topic du réacteur puis sur le topic admin (isolés)
3. envoyer les notifications si activées (échec journalisé, jamais fatal)

Une fois l'enregistrement créé, rien en aval ne le défait.
"""

import logging
from typing import Optional

from config.settings import RealtimeConfig
from services.streaming.realtime_channel import RealtimeChannel, RealtimeEvent, RealtimeEventType
from shared.exceptions import AlertPersistenceError

from .alert_types import Alert, AlertDraft, ThresholdType

logger = logging.getLogger(__name__)


def build_alert_message(field_name: str, current_value: float, threshold_value: float,
                        threshold_type: ThresholdType) -> str:
    """
    Message lisible d'une alerte.

    >>> build_alert_message("ph", 5, 10, ThresholdType.MIN)
    'PH is below threshold: Current value 5.00, Threshold 10.00'
    """
    label = field_name.upper().replace("_", " ")
    direction = "below" if threshold_type is ThresholdType.MIN else "above"
    return f"{label} is {direction} threshold: Current value {current_value:.2f}, Threshold {threshold_value:.2f}"


def alert_payload(alert: Alert) -> dict:
    return alert.model_dump(mode="json")


class AlertSink:
    """Persiste une alerte puis la diffuse (temps réel + notifications)"""

    def __init__(self,
                 alert_store,
                 realtime: RealtimeChannel,
                 realtime_config: Optional[RealtimeConfig] = None,
                 dispatcher=None,
                 notifications_enabled: bool = False,
                 metrics=None):
        self.alert_store = alert_store
        self.realtime = realtime
        self.realtime_config = realtime_config or RealtimeConfig()
        self.dispatcher = dispatcher
        self.notifications_enabled = notifications_enabled and dispatcher is not None
        self.metrics = metrics

    async def _publish(self, topic: str, event_type: RealtimeEventType, alert: Alert, topic_kind: str) -> bool:
        event = RealtimeEvent(event=event_type, data=alert_payload(alert))
        try:
            await self.realtime.publish(topic, event.to_dict())
            return True
        except Exception as e:
            logger.error(f"Failed to publish alert {alert.alert_id} on {topic}: {e}")
            if self.metrics:
                self.metrics.record_publish_failure(topic_kind)
            return False

    async def emit(self, draft: AlertDraft) -> Alert:
        """
        Crée l'alerte et la diffuse.

        Raises:
            AlertPersistenceError: si l'Alert Store refuse l'écriture
        """
        try:
            alert = await self.alert_store.create_alert(draft)
        except Exception as e:
            raise AlertPersistenceError(draft.reactor_id, draft.field_name, cause=e) from e

        logger.warning(f"Alert {alert.alert_id} created for reactor {alert.reactor_id}: "
                       f"{alert.message} [{alert.severity.value}]")
        if self.metrics:
            self.metrics.record_alert_created(alert.severity.value, alert.stream_kind.value)

        await self._publish(self.realtime_config.reactor_topic(alert.reactor_id),
                            RealtimeEventType.REACTOR_ALERT, alert, "reactor")
        await self._publish(self.realtime_config.admin_topic,
                            RealtimeEventType.ADMIN_ALERT, alert, "admin")

        if self.notifications_enabled:
            try:
                await self.dispatcher.dispatch(alert)
            except Exception as e:
                logger.error(f"Notification dispatch failed for alert {alert.alert_id}: {e}")

        return alert
