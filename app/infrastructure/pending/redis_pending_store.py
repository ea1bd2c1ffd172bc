import json
import logging
from typing import Optional

import redis

from ...application.ports.pending_store import PendingRegistration, PendingRegistrationStore

logger = logging.getLogger(__name__)


class RedisPendingStore(PendingRegistrationStore):
    def __init__(self, url: Optional[str] = None, ttl_minutes: int = 30, prefix: str = "pending:", client=None) -> None:
        self.client = client if client is not None else redis.Redis.from_url(url)
        self.ttl_seconds = ttl_minutes * 60
        self.prefix = prefix

    def _key(self, flow_id: str) -> str:
        return f"{self.prefix}{flow_id}"

    def save(self, pending: PendingRegistration) -> None:
        self.client.setex(self._key(pending.flow_id), self.ttl_seconds, json.dumps(pending.to_dict()))

    def get(self, flow_id: str) -> Optional[PendingRegistration]:
        raw = self.client.get(self._key(flow_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return PendingRegistration.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            logger.warning(f"Discarding unreadable pending flow {flow_id}: {e}")
            self.client.delete(self._key(flow_id))
            return None

    def delete(self, flow_id: str) -> None:
        self.client.delete(self._key(flow_id))
