"""
Schéma de télémétrie - un modèle d'échantillon typé par type de flux

Une règle référence un couple (type de flux, champ). Le couple est résolu
contre le schéma ci-dessous à l'entrée de la règle : le moniteur n'indexe
jamais un échantillon avec une chaîne libre. La recherche ignore la casse :
une règle sur ``ph`` lit la colonne ``pH`` d'un échantillon gaz.

Les mesures sont optionnelles : une colonne absente (ou NaN) signifie
"pas encore disponible", jamais zéro.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from shared.exceptions import UnknownFieldError


class StreamKind(str, Enum):
    """Types de flux de télémétrie remontés par un réacteur"""
    DILUTION = "dilution"
    GAS = "gas"
    LEVEL_CONTROL = "level_control"


class TelemetrySample(BaseModel):
    """Base commune : un échantillon horodaté d'un réacteur"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    reactor_id: int
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def value_of(self, field_name: str) -> Optional[float]:
        """Valeur du champ, ou None si pas encore disponible."""
        attr = resolve_field(self.stream_kind, field_name)
        value = getattr(self, attr)
        if value is None or math.isnan(value):
            return None
        return float(value)


class DilutionSample(TelemetrySample):
    stream_kind: Literal[StreamKind.DILUTION] = StreamKind.DILUTION

    time_passed: Optional[float] = None
    flowrate: Optional[float] = None
    dilution_rate: Optional[float] = None
    volume_reactor: Optional[float] = None
    mass_in_tank: Optional[float] = None
    filtered_mass_in_tank: Optional[float] = None
    total_tank_balance: Optional[float] = None


class GasSample(TelemetrySample):
    stream_kind: Literal[StreamKind.GAS] = StreamKind.GAS

    OUR: Optional[float] = None
    RQ: Optional[float] = None
    Kla_1h: Optional[float] = None
    Kla_bar: Optional[float] = None
    stirrer_speed: Optional[float] = None
    pH: Optional[float] = None
    DO: Optional[float] = None
    reactor_temp: Optional[float] = None
    pio2: Optional[float] = None
    gas_flow_in: Optional[float] = None
    reactor_volume: Optional[float] = None
    Tout: Optional[float] = None
    Tin: Optional[float] = None
    Pout: Optional[float] = None
    Pin: Optional[float] = None
    gas_out: Optional[float] = None
    Ni: Optional[float] = None
    Nout: Optional[float] = None
    CPR: Optional[float] = None
    Yo2in: Optional[float] = None
    Yo2out: Optional[float] = None
    Yco2in: Optional[float] = None
    Yco2out: Optional[float] = None
    Yinert_in: Optional[float] = None
    Yinert_out: Optional[float] = None


class LevelControlSample(TelemetrySample):
    stream_kind: Literal[StreamKind.LEVEL_CONTROL] = StreamKind.LEVEL_CONTROL

    reactor_weight: Optional[float] = None
    volume_reactor: Optional[float] = None
    pid_value: Optional[float] = None
    pump_rpm: Optional[float] = None


AnyTelemetrySample = Annotated[
    Union[DilutionSample, GasSample, LevelControlSample],
    Field(discriminator="stream_kind"),
]

sample_adapter: TypeAdapter = TypeAdapter(AnyTelemetrySample)

SAMPLE_MODELS: Dict[StreamKind, Type[TelemetrySample]] = {
    StreamKind.DILUTION: DilutionSample,
    StreamKind.GAS: GasSample,
    StreamKind.LEVEL_CONTROL: LevelControlSample,
}

_BASE_FIELDS = {"reactor_id", "timestamp", "stream_kind"}

# stream kind -> {lowercased field name -> canonical attribute}
_FIELD_INDEX: Dict[StreamKind, Dict[str, str]] = {
    kind: {name.lower(): name for name in model.model_fields if name not in _BASE_FIELDS}
    for kind, model in SAMPLE_MODELS.items()
}


def schema_fields(stream_kind: StreamKind) -> Tuple[str, ...]:
    """Noms canoniques des champs d'un type de flux."""
    return tuple(_FIELD_INDEX[StreamKind(stream_kind)].values())


def resolve_field(stream_kind: StreamKind, field_name: str) -> str:
    """
    Résout un nom de champ de règle vers l'attribut canonique du schéma.

    Raises:
        UnknownFieldError: si le champ n'existe pas pour ce type de flux
    """
    kind = StreamKind(stream_kind)
    canonical = _FIELD_INDEX[kind].get(field_name.strip().lower()) if field_name else None
    if canonical is None:
        raise UnknownFieldError(kind.value, field_name)
    return canonical


def parse_sample(stream_kind: StreamKind, reactor_id: int, timestamp: datetime,
                 row: Mapping[str, Any]) -> TelemetrySample:
    """
    Construit un échantillon typé depuis une ligne brute (colonnes DB).

    Les colonnes hors schéma (id, reactor_id, created_at...) sont ignorées.
    """
    kind = StreamKind(stream_kind)
    index = _FIELD_INDEX[kind]
    readings = {}
    for column, value in row.items():
        canonical = index.get(str(column).lower())
        if canonical is not None:
            readings[canonical] = value
    return sample_adapter.validate_python(
        {"stream_kind": kind, "reactor_id": reactor_id, "timestamp": timestamp, **readings})
