"""
Configuration globale pytest pour tous les tests.

Ajoute le répertoire racine du projet au PYTHONPATH
pour permettre les imports (ex: from services.xxx import ...)
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

# Ajouter le répertoire racine du projet au sys.path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from services.alerts.alert_types import Reactor, Setpoint  # noqa: E402
from services.monitoring.metrics import MonitorMetrics  # noqa: E402
from services.storage.memory_store import InMemoryMonitorStore  # noqa: E402
from services.telemetry.schema import GasSample, StreamKind  # noqa: E402
from tests.doubles import FakeNotifier, FakeRealtimeChannel, FixedClock  # noqa: E402


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryMonitorStore()


@pytest.fixture
def realtime():
    return FakeRealtimeChannel()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def registry():
    """Registry prometheus isolé (évite les doublons sur REGISTRY)"""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MonitorMetrics(registry=registry)


@pytest.fixture
def seeded_store(store, clock):
    """Un réacteur actif avec une consigne pH min=10 et un échantillon pH=5"""
    store.add_reactor(Reactor(reactor_id=1, reactor_name="Fermenter A"))
    store.add_setpoint(Setpoint(setpoint_id=11, reactor_id=1, stream_kind=StreamKind.GAS,
                                field_name="ph", min_value=10))
    store.add_sample(GasSample(reactor_id=1, timestamp=clock() - timedelta(seconds=30), pH=5.0))
    return store
