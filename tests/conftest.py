"""Shared fixtures: an in-memory async Redis with a controllable clock."""
import os
import sys
sys.path.insert(0, 'backend')

os.environ.setdefault("LANGSMITH_TRACING", "false")

import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class FakeClock:
    """Monotonic clock the tests can move forward."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def advance(self, seconds: float):
        self.now += seconds


def _bounds(length, start, end):
    if start < 0:
        start = max(length + start, 0)
    if end < 0:
        end = length + end
    return start, end + 1


class FakePipeline:
    """Buffers commands and applies them on execute(), like redis.asyncio pipelines."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.commands = []
        return False

    def rpush(self, key, *values):
        self.commands.append(("rpush", key, values))
        return self

    def ltrim(self, key, start, end):
        self.commands.append(("ltrim", key, (start, end)))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", key, (seconds,)))
        return self

    async def execute(self):
        self.redis.check_available()
        results = []
        for name, key, args in self.commands:
            results.append(await getattr(self.redis, name)(key, *args))
        self.commands = []
        return results


class FakeRedis:
    """Subset of redis.asyncio.Redis used by ConversationMemory, with TTL support."""

    def __init__(self, clock: FakeClock = None):
        self.clock = clock or FakeClock()
        self.lists = {}
        self.expiry = {}
        self.available = True
        self.closed = False

    def check_available(self):
        if not self.available:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.clock.now:
            self.lists.pop(key, None)
            self.expiry.pop(key, None)

    async def lrange(self, key, start, end):
        self.check_available()
        self._purge(key)
        items = self.lists.get(key, [])
        lo, hi = _bounds(len(items), start, end)
        return list(items[lo:hi])

    async def rpush(self, key, *values):
        self.check_available()
        self._purge(key)
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def ltrim(self, key, start, end):
        self.check_available()
        self._purge(key)
        items = self.lists.get(key, [])
        lo, hi = _bounds(len(items), start, end)
        self.lists[key] = items[lo:hi]
        return True

    async def expire(self, key, seconds):
        self.check_available()
        self._purge(key)
        if key not in self.lists:
            return False
        self.expiry[key] = self.clock.now + seconds
        return True

    def ttl(self, key):
        deadline = self.expiry.get(key)
        return None if deadline is None else deadline - self.clock.now

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def scan_iter(self, match=None, count=None):
        self.check_available()
        for key in list(self.lists):
            self._purge(key)
            if key in self.lists and (match is None or fnmatch.fnmatch(key, match)):
                yield key

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)
