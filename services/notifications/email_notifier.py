"""
Canal e-mail des alertes

Rendu HTML + texte d'une alerte et envoi SMTP (smtplib) hors de la boucle
asyncio. Un échec d'envoi lève DispatchError pour CE destinataire ;
l'isolation entre destinataires est faite par le dispatcher.
"""

import asyncio
import html
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, runtime_checkable

from config.settings import EmailConfig
from services.alerts.alert_types import Alert, AlertSeverity, Recipient
from shared.exceptions import DispatchError

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    AlertSeverity.INFO: "#3498db",
    AlertSeverity.WARNING: "#f39c12",
    AlertSeverity.CRITICAL: "#e74c3c",
}


@dataclass(frozen=True)
class AlertEmail:
    """Contenu d'une notification d'alerte, indépendant du transport"""
    reactor_name: str
    alert_message: str
    severity: AlertSeverity
    field_name: str
    current_value: float
    threshold_value: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_alert(cls, alert: Alert, reactor_name: str) -> "AlertEmail":
        return cls(
            reactor_name=reactor_name,
            alert_message=alert.message,
            severity=alert.severity,
            field_name=alert.field_name,
            current_value=alert.current_value,
            threshold_value=alert.threshold_value,
            created_at=alert.created_at,
        )

    @property
    def subject(self) -> str:
        return f"[{self.severity.value.upper()}] Bio-Monitor Alert: {self.reactor_name} - {self.field_name}"


@runtime_checkable
class NotificationChannel(Protocol):
    """Contrat d'un canal : send() lève DispatchError en cas d'échec"""

    channel_name: str

    async def send(self, recipient: Recipient, message: AlertEmail) -> None:
        ...


class EmailNotifier:
    """Notification par email"""

    channel_name = "email"

    def __init__(self, config: EmailConfig):
        self.config = config

    def render_html(self, message: AlertEmail) -> str:
        """Formater le corps de l'email en HTML"""
        color = SEVERITY_COLORS.get(message.severity, "#6c757d")
        severity = message.severity.value.upper()
        sent_time = message.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')

        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
          <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: {color}; color: white; padding: 20px; text-align: center;">
              <h2>Bio-Monitor Alert - {severity}</h2>
            </div>
            <div style="background: #f9f9f9; padding: 20px; border: 1px solid #ddd; border-top: none;">
              <h3>Reactor: {html.escape(message.reactor_name)}</h3>
              <div style="background: white; padding: 15px; margin: 15px 0; border-left: 4px solid {color};">
                <p><strong>Alert Message:</strong></p>
                <p>{html.escape(message.alert_message)}</p>
                <hr>
                <p><strong>Field:</strong> {html.escape(message.field_name)}</p>
                <p><strong>Current Value:</strong> <span style="font-weight: bold; color: {color};">{message.current_value}</span></p>
                <p><strong>Threshold Value:</strong> {message.threshold_value}</p>
                <p><strong>Severity:</strong> <span style="font-weight: bold; color: {color};">{severity}</span></p>
                <p><strong>Time:</strong> {sent_time}</p>
              </div>
              <p>Please check the reactor system and take necessary action if required.</p>
              <p><a href="{html.escape(self.config.dashboard_url)}" style="background: {color}; color: white; padding: 10px 20px; text-decoration: none;">View Dashboard</a></p>
            </div>
            <div style="text-align: center; margin-top: 20px; color: #666; font-size: 12px;">
              <p>This is an automated message from Bio-Monitor System</p>
              <p>Do not reply to this email</p>
            </div>
          </div>
        </body>
        </html>
        """

    def render_text(self, message: AlertEmail) -> str:
        lines = [
            f"Bio-Monitor Alert - {message.severity.value.upper()}",
            f"Reactor: {message.reactor_name}",
            "",
            message.alert_message,
            "",
            f"Field: {message.field_name}",
            f"Current Value: {message.current_value}",
            f"Threshold Value: {message.threshold_value}",
            f"Severity: {message.severity.value.upper()}",
            f"Time: {message.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            "",
            f"Dashboard: {self.config.dashboard_url}",
        ]
        return "\n".join(lines)

    def build_message(self, to_email: str, message: AlertEmail) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg['From'] = self.config.from_address or ""
        msg['To'] = to_email
        msg['Subject'] = message.subject
        msg.attach(MIMEText(self.render_text(message), 'plain'))
        msg.attach(MIMEText(self.render_html(message), 'html'))
        return msg

    def _connect(self) -> smtplib.SMTP:
        if self.config.secure:
            server = smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=self.config.timeout_seconds)
        else:
            server = smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout_seconds)

        try:
            if self.config.user and self.config.password:
                if not self.config.secure:
                    server.starttls()
                server.login(self.config.user, self.config.password)
        except Exception:
            # Le socket est déjà ouvert : le fermer avant de remonter l'erreur
            server.close()
            raise
        return server

    def _send_sync(self, msg: MIMEMultipart) -> None:
        server = self._connect()
        try:
            server.send_message(msg)
        finally:
            server.quit()

    async def send(self, recipient: Recipient, message: AlertEmail) -> None:
        """Envoyer par email"""
        if not recipient.email:
            raise DispatchError(f"Recipient {recipient.label} has no email address",
                                channel=self.channel_name, recipient=recipient.label)
        if not self.config.host:
            raise DispatchError("SMTP host not configured", channel=self.channel_name, recipient=recipient.email)

        msg = self.build_message(recipient.email, message)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(f"Failed to send email to {recipient.email}: {e}",
                                channel=self.channel_name, recipient=recipient.email, cause=e) from e

        logger.info(f"Alert email sent to {recipient.email}")

    async def verify(self) -> bool:
        """Vérifie la connexion SMTP (et l'authentification si configurée)"""
        if not self.config.host:
            logger.error("Email configuration error: EMAIL_HOST not set")
            return False

        def _check():
            server = self._connect()
            try:
                server.noop()
            finally:
                server.quit()

        try:
            await asyncio.to_thread(_check)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email configuration error: {e}")
            return False

        logger.info("Email configuration is valid")
        return True


def build_email_notifier(config: EmailConfig) -> Optional[EmailNotifier]:
    if not config.host:
        return None
    return EmailNotifier(config)
