"""
Classifieur de sévérité : évaluation pure des seuils.

Le minimum est testé d'abord, puis le maximum. Si les deux sont franchis
(règle mal configurée avec min > max), le résultat du maximum remplace
entièrement celui du minimum, sévérité comprise.

L'écart est un pourcentage du seuil. Un seuil nul n'a pas de pourcentage :
l'écart est alors la différence absolue entre valeur et seuil, comparée à la
même limite critique.
"""

from dataclasses import dataclass
from typing import Optional

from .alert_types import AlertSeverity, Setpoint, ThresholdType

DEFAULT_CRITICAL_DEVIATION_PCT = 20.0


@dataclass(frozen=True)
class ThresholdViolation:
    """Résultat d'une évaluation en violation"""
    threshold_type: ThresholdType
    threshold_value: float
    current_value: float
    deviation_pct: float
    severity: AlertSeverity


def deviation_percentage(value: float, threshold: float, threshold_type: ThresholdType) -> float:
    """Écart relatif (%) entre la valeur et la borne franchie."""
    if threshold == 0:
        return abs(value - threshold)
    if threshold_type is ThresholdType.MIN:
        return (threshold - value) / threshold * 100
    return (value - threshold) / threshold * 100


def classify_severity(deviation_pct: float,
                      critical_threshold_pct: float = DEFAULT_CRITICAL_DEVIATION_PCT) -> AlertSeverity:
    """critical strictement au-delà du seuil, warning sinon. Jamais info."""
    if deviation_pct > critical_threshold_pct:
        return AlertSeverity.CRITICAL
    return AlertSeverity.WARNING


def classify_reading(value: float,
                     min_value: Optional[float] = None,
                     max_value: Optional[float] = None,
                     critical_threshold_pct: float = DEFAULT_CRITICAL_DEVIATION_PCT) -> Optional[ThresholdViolation]:
    """
    Évalue une valeur contre une plage [min, max].

    Returns:
        ThresholdViolation, ou None si la valeur est dans la plage
    """
    violation = None

    if min_value is not None and value < min_value:
        deviation = deviation_percentage(value, min_value, ThresholdType.MIN)
        violation = ThresholdViolation(
            threshold_type=ThresholdType.MIN,
            threshold_value=min_value,
            current_value=value,
            deviation_pct=deviation,
            severity=classify_severity(deviation, critical_threshold_pct),
        )

    if max_value is not None and value > max_value:
        deviation = deviation_percentage(value, max_value, ThresholdType.MAX)
        violation = ThresholdViolation(
            threshold_type=ThresholdType.MAX,
            threshold_value=max_value,
            current_value=value,
            deviation_pct=deviation,
            severity=classify_severity(deviation, critical_threshold_pct),
        )

    return violation


class SeverityClassifier:
    """Classifieur configuré avec le seuil critique (ALERT_CRITICAL_DEVIATION_PCT)"""

    def __init__(self, critical_threshold_pct: float = DEFAULT_CRITICAL_DEVIATION_PCT):
        self.critical_threshold_pct = critical_threshold_pct

    def evaluate(self, setpoint: Setpoint, value: float) -> Optional[ThresholdViolation]:
        return classify_reading(
            value,
            min_value=setpoint.min_value,
            max_value=setpoint.max_value,
            critical_threshold_pct=self.critical_threshold_pct,
        )
