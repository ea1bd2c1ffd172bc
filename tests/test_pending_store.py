import json

from app.application.ports.pending_store import FlowStage, PendingRegistration
from app.infrastructure.identity.mock_registry import MockIdentityRegistry
from app.infrastructure.pending.memory_pending_store import InMemoryPendingStore
from app.infrastructure.pending.redis_pending_store import RedisPendingStore
from app.core.config import settings


def make_pending(clock, flow_id="flow-abcdefghijklmnop"):
    identity = MockIdentityRegistry(settings.MOCK_DATA_PATH).resolve("1234567890123")
    return PendingRegistration(
        flow_id=flow_id,
        phone="01712345678",
        is_new_account=True,
        stage=FlowStage.IDENTITY_RESOLVED,
        created_at=clock(),
        external_id="1234567890123",
        identity=identity,
    )


def test_memory_store_round_trip_and_copy(clock):
    store = InMemoryPendingStore(ttl_minutes=30, clock=clock)
    pending = make_pending(clock)
    store.save(pending)

    loaded = store.get(pending.flow_id)
    assert loaded == pending

    loaded.stage = FlowStage.OTP_SENT
    assert store.get(pending.flow_id).stage == FlowStage.IDENTITY_RESOLVED


def test_memory_store_expires_entries(clock):
    store = InMemoryPendingStore(ttl_minutes=30, clock=clock)
    pending = make_pending(clock)
    store.save(pending)

    clock.advance(minutes=29)
    assert store.get(pending.flow_id) is not None
    clock.advance(minutes=1)
    assert store.get(pending.flow_id) is None


def test_memory_store_save_refreshes_ttl(clock):
    store = InMemoryPendingStore(ttl_minutes=30, clock=clock)
    pending = make_pending(clock)
    store.save(pending)
    clock.advance(minutes=20)
    store.save(pending)
    clock.advance(minutes=20)
    assert store.get(pending.flow_id) is not None


def test_memory_store_delete(clock):
    store = InMemoryPendingStore(clock=clock)
    pending = make_pending(clock)
    store.save(pending)
    store.delete(pending.flow_id)
    store.delete(pending.flow_id)
    assert store.get(pending.flow_id) is None


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def setex(self, key, ttl, value):
        self.data[key] = value.encode("utf-8")
        self.ttls[key] = ttl

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)


def test_redis_store_uses_setex_with_ttl(clock):
    client = FakeRedis()
    store = RedisPendingStore(ttl_minutes=30, client=client)
    pending = make_pending(clock)
    store.save(pending)

    key = f"pending:{pending.flow_id}"
    assert client.ttls[key] == 1800
    assert json.loads(client.data[key])["stage"] == "IdentityResolved"
    assert store.get(pending.flow_id) == pending


def test_redis_store_drops_unreadable_entries():
    client = FakeRedis()
    client.data["pending:broken"] = b"{not json"
    store = RedisPendingStore(client=client)
    assert store.get("broken") is None
    assert "pending:broken" not in client.data


def test_memory_store_drops_abandoned_flows_on_save(clock):
    store = InMemoryPendingStore(ttl_minutes=30, clock=clock)
    for i in range(1000):
        store.save(make_pending(clock, flow_id=f"abandoned-flow-{i:04d}"))
    assert len(store) == 1000

    clock.advance(minutes=120)
    fresh = make_pending(clock)
    store.save(fresh)

    assert len(store) == 1
    assert store.get(fresh.flow_id) == fresh
