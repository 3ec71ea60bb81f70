"""
Contrats des stores externes + implémentation mémoire
"""

from .contracts import AlertStore, ReactorStore, RecipientDirectory, SetpointStore, TelemetryStore
from .memory_store import InMemoryMonitorStore

__all__ = [
    "AlertStore",
    "ReactorStore",
    "RecipientDirectory",
    "SetpointStore",
    "TelemetryStore",
    "InMemoryMonitorStore",
]
