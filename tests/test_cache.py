from depthbook.cache import CacheKey, TTLDepthCache
from depthbook.types import DepthData, ProtocolKind


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def key(pool="0xpool", precision=0.0):
    return CacheKey("ethereum", pool, 50, precision)


def book(price=1.0):
    return DepthData.empty(ProtocolKind.TICK_CLMM, current_price=price)


def test_get_returns_fresh_entries():
    clock = FakeClock()
    cache = TTLDepthCache(ttl=2.0, clock=clock)
    cache.set(key(), book(1.5))
    clock.now += 1.5
    assert cache.get(key()).current_price == 1.5
    assert cache.get(key(precision=0.1)) is None


def test_entries_expire():
    clock = FakeClock()
    cache = TTLDepthCache(ttl=2.0, clock=clock)
    cache.set(key(), book())
    clock.now += 2.5
    assert cache.get(key()) is None
    assert len(cache) == 0


def test_oldest_entries_are_evicted():
    cache = TTLDepthCache(ttl=60, max_entries=3, clock=FakeClock())
    for i in range(5):
        cache.set(key(f"0x{i}"), book(float(i)))
    assert len(cache) == 3
    assert cache.get(key("0x0")) is None
    assert cache.get(key("0x4")).current_price == 4.0


def test_set_refreshes_entry():
    clock = FakeClock()
    cache = TTLDepthCache(ttl=2.0, clock=clock)
    cache.set(key(), book(1.0))
    clock.now += 1.5
    cache.set(key(), book(2.0))
    clock.now += 1.5
    assert cache.get(key()).current_price == 2.0
