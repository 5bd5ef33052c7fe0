from __future__ import annotations

from utils.cooldown_store import MemoryCooldownStore, RedisCooldownStore


class FakeClock:
    def __init__(self, start: float = 500.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_hit_blocks_until_window_passes():
    clock = FakeClock()
    store = MemoryCooldownStore(clock=clock)

    assert store.hit("scan:1", 10) is True
    assert store.hit("scan:1", 10) is False

    clock.now += 9.9
    assert store.hit("scan:1", 10) is False

    clock.now += 0.2
    assert store.hit("scan:1", 10) is True


def test_keys_are_independent():
    store = MemoryCooldownStore(clock=FakeClock())
    assert store.hit("scan:1", 10)
    assert store.hit("scan:2", 10)


def test_get_set_delete():
    clock = FakeClock()
    store = MemoryCooldownStore(clock=clock)

    assert store.get("k") is None
    store.set("k", 30)
    assert store.get("k") == 530.0

    store.delete("k")
    assert store.get("k") is None
    store.delete("k")


def test_expired_get_drops_entry():
    clock = FakeClock()
    store = MemoryCooldownStore(clock=clock)
    store.set("k", 1)
    clock.now += 2
    assert store.get("k") is None
    assert len(store) == 0


def test_sweep_removes_only_expired_entries():
    clock = FakeClock()
    store = MemoryCooldownStore(clock=clock)
    store.set("short", 5)
    store.set("long", 300)

    clock.now += 10
    assert store.sweep() == 1
    assert len(store) == 1
    assert store.get("long") is not None


class FakeRedis:
    """Kleiner In-Process-Ersatz für SET NX PX."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.data = {}
        self.calls = []

    def set(self, key, value, nx=False, px=None):
        self.calls.append((key, nx, px))
        if self.fail:
            raise ConnectionError("redis down")
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def delete(self, key):
        self.data.pop(key, None)

    def pttl(self, key):
        return 4000 if key in self.data else -2


def test_redis_hit_uses_set_nx_px():
    client = FakeRedis()
    store = RedisCooldownStore(client, prefix="tr:")

    assert store.hit("scan:1", 10) is True
    assert store.hit("scan:1", 10) is False
    assert client.calls[0] == ("tr:scan:1", True, 10000)


def test_redis_get_and_delete():
    client = FakeRedis()
    store = RedisCooldownStore(client)
    assert store.get("k") is None
    store.set("k", 5)
    assert store.get("k") is not None
    store.delete("k")
    assert store.get("k") is None
    assert store.sweep() == 0


def test_redis_outage_fails_open():
    store = RedisCooldownStore(FakeRedis(fail=True))
    assert store.hit("scan:1", 10) is True
    assert store.hit("scan:1", 10) is True
