"""
Canal temps réel - publication des alertes vers les observateurs abonnés

Le canal est construit une fois au démarrage (MonitorRuntime) puis passé
explicitement à l'AlertSink ; aucun handle global.

Topics :
- ``reactor:<id>`` : observateurs d'un réacteur (événement ``reactor:alert``)
- ``admin`` : vue administrateur, toutes sévérités (événement ``admin:alert``)
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import redis.asyncio as redis

from config.settings import RealtimeConfig

log = logging.getLogger(__name__)


class RealtimeEventType(str, Enum):
    """Événements publiés sur le canal temps réel"""
    REACTOR_ALERT = "reactor:alert"
    ADMIN_ALERT = "admin:alert"


@dataclass
class RealtimeEvent:
    """Enveloppe d'un message publié"""
    event: RealtimeEventType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "event": self.event.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@runtime_checkable
class RealtimeChannel(Protocol):
    """Contrat consommé : publish(topic, payload)"""

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        ...


class NullRealtimeChannel:
    """Canal désactivé (pas de REDIS_URL) : les messages sont seulement comptés"""

    def __init__(self):
        self.published_count = 0

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.published_count += 1
        log.debug(f"Realtime channel disabled, dropping message for topic {topic}")

    async def close(self) -> None:
        return None


class RedisRealtimeChannel:
    """Publication Redis pub/sub (redis.asyncio)"""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.redis_client: Optional[redis.Redis] = client
        self.stats = {
            "messages_published": 0,
            "publish_errors": 0,
        }

    def _client(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.redis_url, decode_responses=True)
        return self.redis_client

    async def ping(self) -> bool:
        """Vérifie la connexion Redis"""
        try:
            await self._client().ping()
            return True
        except redis.RedisError as e:
            log.error(f"Redis ping failed for realtime channel: {e}")
            return False

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            await self._client().publish(topic, json.dumps(payload, default=str))
        except Exception:
            self.stats["publish_errors"] += 1
            raise
        self.stats["messages_published"] += 1

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None


def build_realtime_channel(config: RealtimeConfig):
    """Canal Redis si REDIS_URL est configuré, sinon canal nul"""
    if not config.redis_url:
        log.info("Redis URL not configured, realtime channel disabled")
        return NullRealtimeChannel()

    log.info("Realtime channel using Redis pub/sub")
    return RedisRealtimeChannel(config.redis_url)
