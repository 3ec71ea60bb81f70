"""
Garde de déduplication des violations

Une violation candidate (réacteur, champ, borne) est supprimée si une alerte
NON acquittée avec le même champ et la même borne a été créée dans la
fenêtre glissante (5 min par défaut). Debounce par (réacteur, champ, borne),
pas un rate-limit global : deux champs en violation simultanée produisent
deux alertes.

L'état vit dans l'Alert Store (les N alertes récentes non acquittées du
réacteur), pas en mémoire : un redémarrage ne rouvre pas la fenêtre.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .alert_types import Alert, ThresholdType

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(minutes=5)
DEFAULT_LOOKBACK = 10


class DeduplicationGuard:
    """
    Décide si une violation répète une alerte très récente

    Args:
        window: fenêtre de suppression
        lookback: nombre d'alertes récentes non acquittées lues par réacteur
    """

    def __init__(self, window: timedelta = DEFAULT_DEDUP_WINDOW, lookback: int = DEFAULT_LOOKBACK):
        if window <= timedelta(0):
            raise ValueError("Deduplication window must be positive")
        if lookback < 1:
            raise ValueError("Deduplication lookback must be >= 1")
        self.window = window
        self.lookback = lookback

    def find_duplicate(self,
                       reactor_id: int,
                       field_name: str,
                       threshold_type: ThresholdType,
                       recent_alerts: Iterable[Alert],
                       now: Optional[datetime] = None) -> Optional[Alert]:
        """Retourne l'alerte qui rend la candidate redondante, sinon None."""
        now = now or datetime.now(timezone.utc)

        for alert in recent_alerts:
            if alert.is_acknowledged or alert.reactor_id != reactor_id:
                continue
            if alert.field_name != field_name or alert.threshold_type != threshold_type:
                continue
            if now - alert.created_at < self.window:
                return alert

        return None

    def is_duplicate(self,
                     reactor_id: int,
                     field_name: str,
                     threshold_type: ThresholdType,
                     recent_alerts: Iterable[Alert],
                     now: Optional[datetime] = None) -> bool:
        duplicate = self.find_duplicate(reactor_id, field_name, threshold_type, recent_alerts, now)
        if duplicate is not None:
            logger.debug(f"Violation {field_name}/{threshold_type.value} on reactor {reactor_id} "
                         f"suppressed (alert {duplicate.alert_id} at {duplicate.created_at.isoformat()})")
            return True
        return False

    def get_stats(self):
        return {
            "window_seconds": self.window.total_seconds(),
            "lookback": self.lookback,
        }
