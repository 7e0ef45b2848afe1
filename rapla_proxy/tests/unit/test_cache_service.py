import asyncio

import pytest

from rapla_proxy.core.cache_service import CachedResponse, ResponseCache


class FakeTimer:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _response(body: bytes = b"BEGIN:VCALENDAR", status_code: int = 200) -> CachedResponse:
    return CachedResponse(status_code=status_code, body=body, media_type="text/calendar")


@pytest.mark.asyncio
async def test_get_or_compute_miss_then_hit():
    timer = FakeTimer()
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=timer)
    calls = []

    async def factory():
        calls.append(1)
        return _response()

    first, hit = await cache.get_or_compute("/rapla/calendar?key=k", factory)
    assert hit is False
    assert first.timestamp == 1000.0

    timer.now += 12
    second, hit = await cache.get_or_compute("/rapla/calendar?key=k", factory)
    assert hit is True
    assert second.body == first.body
    assert cache.age_of(second) == 12
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    timer = FakeTimer()
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=timer)

    async def factory():
        return _response()

    await cache.get_or_compute("key", factory)
    timer.now += 61
    assert cache.get("key") is None
    _, hit = await cache.get_or_compute("key", factory)
    assert hit is False


@pytest.mark.asyncio
async def test_error_responses_are_cached():
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=FakeTimer())

    async def factory():
        return _response(body=b'{"message":"upstream returned bad status code"}', status_code=404)

    await cache.get_or_compute("key", factory)
    cached, hit = await cache.get_or_compute("key", factory)
    assert hit is True
    assert cached.status_code == 404


@pytest.mark.asyncio
async def test_zero_max_size_never_stores():
    cache = ResponseCache(ttl_seconds=60, max_size_mb=0, timer=FakeTimer())
    calls = []

    async def factory():
        calls.append(1)
        return _response()

    await cache.get_or_compute("key", factory)
    _, hit = await cache.get_or_compute("key", factory)
    assert hit is False
    assert len(calls) == 2


def test_oversized_response_is_not_cached():
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=FakeTimer())
    cache.put("big", _response(body=b"x" * (2 * 1024 * 1024)))
    assert cache.get("big") is None


def test_size_bound_evicts_entries():
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=FakeTimer())
    for idx in range(4):
        cache.put(f"key{idx}", _response(body=b"x" * (400 * 1024)))
    remaining = [key for key in ("key0", "key1", "key2", "key3") if cache.get(key) is not None]
    assert len(remaining) == 2
    assert "key3" in remaining


@pytest.mark.asyncio
async def test_concurrent_misses_compute_once():
    cache = ResponseCache(ttl_seconds=60, max_size_mb=1, timer=FakeTimer())
    calls = []

    async def slow_factory():
        calls.append(1)
        await asyncio.sleep(0.01)
        return _response()

    results = await asyncio.gather(*(cache.get_or_compute("key", slow_factory) for _ in range(5)))

    assert len(calls) == 1
    assert sorted(hit for _, hit in results) == [False, True, True, True, True]


@pytest.mark.asyncio
async def test_uncached_computations_stay_serialized():
    """A request arriving while a woken waiter recomputes must queue behind it."""
    cache = ResponseCache(ttl_seconds=60, max_size_mb=0, timer=FakeTimer())
    active = []
    max_active = []

    async def slow_factory():
        active.append(1)
        max_active.append(len(active))
        await asyncio.sleep(0.05)
        active.pop()
        return _response()

    first = asyncio.create_task(cache.get_or_compute("key", slow_factory))
    second = asyncio.create_task(cache.get_or_compute("key", slow_factory))
    # First has finished, second is recomputing since nothing was stored
    await asyncio.sleep(0.07)
    third = asyncio.create_task(cache.get_or_compute("key", slow_factory))
    await asyncio.gather(first, second, third)

    assert len(max_active) == 3
    assert max(max_active) == 1
    assert cache._locks == {}
