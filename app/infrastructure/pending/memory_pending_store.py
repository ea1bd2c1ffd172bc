import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from ...application.ports.pending_store import PendingRegistration, PendingRegistrationStore
from ...utils import utcnow


class InMemoryPendingStore(PendingRegistrationStore):
    """Process-local pending flows. Every save pushes the expiry out by the TTL."""

    def __init__(self, ttl_minutes: int = 30, clock: Callable[[], datetime] = utcnow) -> None:
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock
        self._lock = threading.Lock()
        self._store: Dict[str, Tuple[datetime, dict]] = {}

    def save(self, pending: PendingRegistration) -> None:
        with self._lock:
            now = self.clock()
            self._purge_expired(now)
            self._store[pending.flow_id] = (now + self.ttl, pending.to_dict())

    def get(self, flow_id: str) -> Optional[PendingRegistration]:
        with self._lock:
            entry = self._store.get(flow_id)
            if not entry:
                return None
            expires_at, data = entry
            if expires_at <= self.clock():
                del self._store[flow_id]
                return None
        # Callers get a copy; changes only stick through save()
        return PendingRegistration.from_dict(data)

    def delete(self, flow_id: str) -> None:
        with self._lock:
            self._store.pop(flow_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _purge_expired(self, now: datetime) -> None:
        # Abandoned flows are never read back, so drop them here; caller holds the lock
        expired = [flow_id for flow_id, (expires_at, _) in self._store.items() if expires_at <= now]
        for flow_id in expired:
            del self._store[flow_id]
