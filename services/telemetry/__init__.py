from .schema import (
    StreamKind,
    TelemetrySample,
    DilutionSample,
    GasSample,
    LevelControlSample,
    AnyTelemetrySample,
    parse_sample,
    resolve_field,
    schema_fields,
)

__all__ = [
    "StreamKind",
    "TelemetrySample",
    "DilutionSample",
    "GasSample",
    "LevelControlSample",
    "AnyTelemetrySample",
    "parse_sample",
    "resolve_field",
    "schema_fields",
]
