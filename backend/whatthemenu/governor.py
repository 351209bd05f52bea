"""Admission gate in front of the explanation endpoint: origin allow-list plus per-client
fixed-window rate limiting."""

from __future__ import annotations

import asyncio
import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from redis.asyncio import Redis

from .logging_config import get_logger
from .metrics import governor_admissions_total
from .settings import settings
from .utils import wildcard_to_regex

logger = get_logger(__name__)

FORBIDDEN_ORIGIN = "forbidden_origin"
RATE_LIMITED = "rate_limited"


@dataclass(slots=True, frozen=True)
class Admission:
    allowed: bool
    reason: str | None = None
    limit: int = 0
    remaining: int = 0
    retry_after: float = 0.0


@dataclass(slots=True, frozen=True)
class WindowResult:
    allowed: bool
    count: int
    reset_in: float


class OriginPolicy:
    """Exact origins plus "*" wildcard patterns (preview deployments)."""

    def __init__(self, origins: list[str] | None = None, patterns: list[str] | None = None):
        self.origins = {o.rstrip("/") for o in origins or []}
        self._patterns = [re.compile(wildcard_to_regex(p)) for p in patterns or []]

    @classmethod
    def from_settings(cls) -> OriginPolicy:
        return cls(settings.allow_origins, settings.allow_origin_patterns)

    @property
    def enabled(self) -> bool:
        return bool(self.origins or self._patterns)

    def allows(self, origin: str | None) -> bool:
        if not self.enabled or "*" in self.origins:
            return True
        if not origin:
            return False
        candidate = origin.strip().rstrip("/")
        if candidate in self.origins:
            return True
        return any(pattern.match(candidate) for pattern in self._patterns)


class WindowStore(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: float) -> WindowResult: ...

    async def reset(self) -> None: ...


class InMemoryWindowStore:
    """Process-local windows guarded by sharded locks.

    State is lost on restart and not shared between workers; use ``RedisWindowStore`` for
    multi-instance deployments.
    """

    def __init__(self, shards: int = 32, clock: Callable[[], float] = time.monotonic) -> None:
        self._windows: dict[str, dict[str, float]] = {}
        self._locks = [asyncio.Lock() for _ in range(max(1, shards))]
        self._clock = clock
        self._last_cleanup = 0.0

    async def hit(self, key: str, limit: int, window_seconds: float) -> WindowResult:
        lock = self._locks[hash(key) % len(self._locks)]
        async with lock:
            now = self._clock()
            entry = self._windows.get(key)
            if entry is None or now > entry["reset_at"]:
                entry = {"count": 1, "reset_at": now + window_seconds}
                self._windows[key] = entry
                self._maybe_cleanup(now, window_seconds)
                return WindowResult(True, 1, window_seconds)

            reset_in = max(0.0, entry["reset_at"] - now)
            if entry["count"] < limit:
                entry["count"] += 1
                return WindowResult(True, int(entry["count"]), reset_in)
            return WindowResult(False, int(entry["count"]), reset_in)

    async def reset(self) -> None:
        self._windows.clear()
        self._last_cleanup = 0.0

    def _maybe_cleanup(self, now: float, window_seconds: float) -> None:
        """Drop expired windows periodically to bound memory."""
        if now - self._last_cleanup < window_seconds:
            return
        expired = [key for key, entry in self._windows.items() if entry["reset_at"] < now]
        for key in expired:
            self._windows.pop(key, None)
        self._last_cleanup = now


class RedisWindowStore:
    """Shared fixed windows: INCR a per-client key that expires with the window."""

    def __init__(self, client: Redis, prefix: str = "whatthemenu:ratelimit:") -> None:
        self._client = client
        self._prefix = prefix

    async def hit(self, key: str, limit: int, window_seconds: float) -> WindowResult:
        redis_key = self._prefix + key
        window_ms = max(1, int(window_seconds * 1000))
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.pexpire(redis_key, window_ms, nx=True)
            pipe.pttl(redis_key)
            count, _, ttl_ms = await pipe.execute()
        reset_in = (ttl_ms if ttl_ms and ttl_ms > 0 else window_ms) / 1000.0
        return WindowResult(int(count) <= limit, int(count), reset_in)

    async def reset(self) -> None:
        async for redis_key in self._client.scan_iter(match=self._prefix + "*"):
            await self._client.delete(redis_key)


def window_store_from_settings() -> WindowStore:
    if settings.REDIS_ENABLED and settings.REDIS_URL:
        client = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        logger.info("rate_limit_store", backend="redis")
        return RedisWindowStore(client)
    return InMemoryWindowStore()


class RequestGovernor:
    def __init__(
        self,
        origin_policy: OriginPolicy | None = None,
        store: WindowStore | None = None,
        *,
        limit: int | None = None,
        window_seconds: float | None = None,
        enabled: bool | None = None,
    ) -> None:
        self.origin_policy = origin_policy or OriginPolicy()
        self.store = store or InMemoryWindowStore()
        self._limit = limit
        self._window_seconds = window_seconds
        self._enabled = enabled

    @classmethod
    def from_settings(cls) -> RequestGovernor:
        return cls(OriginPolicy.from_settings(), window_store_from_settings())

    # settings are read on every call so runtime toggles (tests, admin) take effect
    @property
    def limit(self) -> int:
        return settings.RATE_LIMIT_REQUESTS if self._limit is None else self._limit

    @property
    def window_seconds(self) -> float:
        if self._window_seconds is None:
            return float(settings.RATE_LIMIT_WINDOW_SECONDS)
        return self._window_seconds

    @property
    def enabled(self) -> bool:
        return settings.RATE_LIMIT_ENABLED if self._enabled is None else self._enabled

    async def admit(self, client_key: str, origin: str | None) -> Admission:
        if not self.origin_policy.allows(origin):
            governor_admissions_total.labels(result=FORBIDDEN_ORIGIN).inc()
            logger.warning("governor_denied", reason=FORBIDDEN_ORIGIN, origin=origin)
            return Admission(False, FORBIDDEN_ORIGIN)

        limit = self.limit
        window = self.window_seconds
        if not self.enabled or limit <= 0 or window <= 0:
            governor_admissions_total.labels(result="allow").inc()
            return Admission(True)

        result = await self.store.hit(client_key or "anonymous", limit, window)
        if not result.allowed:
            governor_admissions_total.labels(result=RATE_LIMITED).inc()
            logger.info("governor_denied", reason=RATE_LIMITED, client=client_key)
            return Admission(
                False,
                RATE_LIMITED,
                limit=limit,
                remaining=0,
                retry_after=max(1, math.ceil(result.reset_in)),
            )

        governor_admissions_total.labels(result="allow").inc()
        return Admission(
            True,
            limit=limit,
            remaining=max(0, limit - result.count),
            retry_after=result.reset_in,
        )

    async def reset(self) -> None:
        await self.store.reset()


__all__ = [
    "Admission",
    "InMemoryWindowStore",
    "OriginPolicy",
    "RedisWindowStore",
    "RequestGovernor",
]
