"""
Types du domaine alertes : réacteurs, consignes (setpoints), alertes

Les réacteurs, consignes et destinataires sont possédés par la couche CRUD ;
le moteur ne fait que les lire. Les alertes naissent uniquement dans
l'AlertSink et ne sont jamais modifiées par le chemin de surveillance
(l'acquittement est fait par un utilisateur, hors moteur).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from services.telemetry.schema import StreamKind, resolve_field
from shared.exceptions import UnknownFieldError


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class AlertSeverity(str, Enum):
    """Niveaux de gravité des alertes"""
    INFO = "info"          # Réservé aux sources manuelles/externes
    WARNING = "warning"
    CRITICAL = "critical"


class ThresholdType(str, Enum):
    """Borne franchie"""
    MIN = "min"
    MAX = "max"


class Reactor(BaseModel):
    """Unité surveillée, frontière de tenant pour règles/télémétrie/rétention"""
    model_config = ConfigDict(frozen=True)

    reactor_id: int
    reactor_name: str = ""
    is_active: bool = True
    data_retention_days: Optional[int] = Field(None, gt=0, description="None = défaut global")

    @property
    def display_name(self) -> str:
        return self.reactor_name or f"Reactor {self.reactor_id}"


class Setpoint(BaseModel):
    """Plage acceptable définie par un opérateur pour un champ de télémétrie"""
    model_config = ConfigDict(frozen=True)

    setpoint_id: int
    reactor_id: int
    stream_kind: StreamKind
    field_name: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    is_active: bool = True
    user_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_rule(self):
        if self.min_value is None and self.max_value is None:
            raise ValueError("A setpoint needs at least one of min_value / max_value")
        try:
            resolve_field(self.stream_kind, self.field_name)
        except UnknownFieldError as e:
            raise ValueError(e.message) from e
        return self

    @property
    def sort_key(self):
        """Ordre stable d'évaluation : type de flux puis nom de champ"""
        return (self.stream_kind.value, self.field_name.lower(), self.setpoint_id)


class AlertDraft(BaseModel):
    """Violation validée et non dupliquée, prête à être persistée"""
    model_config = ConfigDict(frozen=True)

    reactor_id: int
    setpoint_id: Optional[int] = None
    stream_kind: StreamKind
    field_name: str
    current_value: float
    threshold_value: float
    threshold_type: ThresholdType
    severity: AlertSeverity
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class Alert(AlertDraft):
    """Alerte persistée"""

    alert_id: int
    is_acknowledged: bool = False
    acknowledged_by: Optional[int] = None
    acknowledged_at: Optional[datetime] = None

    @field_validator("acknowledged_at")
    @classmethod
    def ack_assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @classmethod
    def from_draft(cls, draft: AlertDraft, alert_id: int) -> "Alert":
        return cls(alert_id=alert_id, **draft.model_dump())

    def is_older_than(self, cutoff: datetime) -> bool:
        return self.created_at < cutoff


class Recipient(BaseModel):
    """Utilisateur affecté à un réacteur"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.email or self.username or f"user:{self.user_id}"


class NotificationRecord(BaseModel):
    """Trace d'audit d'un envoi réussi (append-only)"""
    model_config = ConfigDict(frozen=True)

    alert_id: int
    user_id: int
    channel: str = "email"
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
