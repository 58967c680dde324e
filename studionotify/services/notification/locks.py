"""Best-effort "one sweep at a time" leases.

A lease expires on its own after `ttl_seconds`, so a crashed sweep never blocks
delivery for longer than that. Neither implementation is a distributed lock in
the strict sense: an expired lease can be taken over while its holder is still
running.
"""

import threading
import time
from uuid import uuid4

import redis

from studionotify.common.config import settings


class InProcessSweepLock:
    """Lease table scoped to the current process."""

    def __init__(self, ttl_seconds: int | None = None, clock=time.monotonic) -> None:
        self.ttl_seconds = settings.sweep_lock_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._mutex = threading.Lock()
        self._leases: dict[str, tuple[str, float]] = {}

    def acquire(self, name: str) -> str | None:
        now = self._clock()
        with self._mutex:
            held = self._leases.get(name)
            if held is not None and held[1] > now:
                return None
            token = str(uuid4())
            self._leases[name] = (token, now + self.ttl_seconds)
            return token

    def release(self, name: str, token: str) -> None:
        with self._mutex:
            held = self._leases.get(name)
            if held is not None and held[0] == token:
                del self._leases[name]


# Delete the lease key only when it still holds the caller's token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisSweepLock:
    """Lease stored as a Redis key with `SET NX EX`."""

    def __init__(self, rdb: redis.Redis, ttl_seconds: int | None = None, prefix: str = "sweeplock") -> None:
        self.rdb = rdb
        self.ttl_seconds = settings.sweep_lock_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.prefix = prefix
        self._release = rdb.register_script(RELEASE_SCRIPT)

    def _key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def acquire(self, name: str) -> str | None:
        token = str(uuid4())
        if self.rdb.set(self._key(name), token, nx=True, ex=self.ttl_seconds):
            return token
        return None

    def release(self, name: str, token: str) -> None:
        self._release(keys=[self._key(name)], args=[token])


def build_sweep_lock():
    """Create the lease backend selected by `SWEEP_LOCK_BACKEND`."""

    if settings.sweep_lock_backend == "memory":
        return InProcessSweepLock()
    if settings.sweep_lock_backend == "redis":
        return RedisSweepLock(redis.Redis.from_url(settings.redis_url, decode_responses=True))
    raise ValueError(f"unknown sweep lock backend: {settings.sweep_lock_backend}")
