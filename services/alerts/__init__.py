"""
Services d'alertes de seuils pour le moteur Bio-Monitor

Ce module regroupe :
- les types du domaine (réacteurs, consignes, alertes)
- la classification de sévérité (pure)
- la garde de déduplication
- l'AlertSink (persistance puis diffusion)
"""

from .alert_types import Alert, AlertDraft, AlertSeverity, Reactor, Recipient, Setpoint, ThresholdType
from .alert_sink import AlertSink, build_alert_message
from .deduplication import DeduplicationGuard
from .severity import SeverityClassifier, ThresholdViolation, classify_reading

__all__ = [
    "Alert",
    "AlertDraft",
    "AlertSeverity",
    "Reactor",
    "Recipient",
    "Setpoint",
    "ThresholdType",
    "AlertSink",
    "build_alert_message",
    "DeduplicationGuard",
    "SeverityClassifier",
    "ThresholdViolation",
    "classify_reading",
]
