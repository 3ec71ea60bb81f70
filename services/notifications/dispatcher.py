"""
Notification dispatcher

Résout les destinataires affectés au réacteur de l'alerte puis envoie un
message à chacun, avec une concurrence bornée (semaphore). Chaque envoi est
isolé : l'échec d'un destinataire est logué et reporté, sans empêcher les
autres ni faire échouer le dispatch.

Un envoi réussi ajoute un NotificationRecord ; un envoi échoué n'en écrit
pas et n'est pas retenté pour cette alerte.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from services.alerts.alert_types import Alert, Recipient
from services.notifications.email_notifier import AlertEmail, NotificationChannel
from services.storage.contracts import AlertStore, ReactorStore, RecipientDirectory
from shared.exceptions import DispatchError

logger = logging.getLogger(__name__)


@dataclass
class RecipientResult:
    """Résultat de l'envoi pour un destinataire"""
    user_id: int
    address: Optional[str]
    sent: bool = False
    recorded: bool = False
    error: Optional[str] = None


@dataclass
class DispatchReport:
    """Agrégat des résultats d'un dispatch"""
    alert_id: int
    channel: str
    results: List[RecipientResult] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.sent)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.sent)

    @property
    def unrecorded_count(self) -> int:
        return sum(1 for r in self.results if r.sent and not r.recorded)


class NotificationDispatcher:
    """Fan-out d'une alerte vers les destinataires d'un réacteur"""

    def __init__(self,
                 reactor_store: ReactorStore,
                 recipients: RecipientDirectory,
                 alert_store: AlertStore,
                 channel: NotificationChannel,
                 max_concurrency: int = 5,
                 metrics=None):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.reactor_store = reactor_store
        self.recipients = recipients
        self.alert_store = alert_store
        self.channel = channel
        self.max_concurrency = max_concurrency
        self.metrics = metrics

    async def _reactor_name(self, reactor_id: int) -> str:
        try:
            reactor = await self.reactor_store.get_reactor(reactor_id)
        except Exception as e:
            logger.warning(f"Could not load reactor {reactor_id} for notification: {e}")
            reactor = None
        return reactor.display_name if reactor else f"Reactor {reactor_id}"

    async def _send_one(self, semaphore: asyncio.Semaphore, alert: Alert,
                        recipient: Recipient, message: AlertEmail) -> RecipientResult:
        result = RecipientResult(user_id=recipient.user_id, address=recipient.email)
        channel_name = self.channel.channel_name

        async with semaphore:
            try:
                await self.channel.send(recipient, message)
                result.sent = True
            except DispatchError as e:
                result.error = e.message
            except Exception as e:
                result.error = f"Unexpected error: {e}"

        if not result.sent:
            logger.error(f"Failed to notify {recipient.label} for alert {alert.alert_id}: {result.error}")
            if self.metrics:
                self.metrics.record_notification(channel_name, "failed")
            return result

        if self.metrics:
            self.metrics.record_notification(channel_name, "sent")

        try:
            await self.alert_store.record_notification(alert.alert_id, recipient.user_id, channel_name)
            result.recorded = True
        except Exception as e:
            # Le message est parti : pas de renvoi, seulement la trace manquante
            result.error = f"Notification sent but not recorded: {e}"
            logger.error(f"Failed to record notification of alert {alert.alert_id} "
                         f"for user {recipient.user_id}: {e}")

        return result

    async def dispatch(self, alert: Alert) -> DispatchReport:
        """
        Envoie l'alerte à tous les destinataires du réacteur.

        Raises:
            DispatchError: si la liste des destinataires est illisible
        """
        report = DispatchReport(alert_id=alert.alert_id, channel=self.channel.channel_name)

        try:
            recipients = await self.recipients.get_assigned_recipients(alert.reactor_id)
        except Exception as e:
            raise DispatchError(f"Could not resolve recipients for reactor {alert.reactor_id}: {e}",
                                channel=self.channel.channel_name, cause=e) from e

        if not recipients:
            logger.info(f"No recipients assigned to reactor {alert.reactor_id}, alert {alert.alert_id} not sent")
            return report

        reactor_name = await self._reactor_name(alert.reactor_id)
        message = AlertEmail.from_alert(alert, reactor_name)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        report.results = list(await asyncio.gather(
            *(self._send_one(semaphore, alert, recipient, message) for recipient in recipients)
        ))

        logger.info(f"Alert {alert.alert_id} dispatched: {report.sent_count} sent, "
                    f"{report.failed_count} failed")
        return report
