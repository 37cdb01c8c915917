"""Sliding-window admission control, keyed by caller identity and route.

Admission never blocks: a call is either recorded and allowed, or refused
with enough information to tell the caller when to come back.
"""
from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import logfire

from .errors import CapacityError


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: float


RATE_LIMITS: dict[str, RateLimit] = {
    "ai_proxy": RateLimit(max_requests=100, window_seconds=60),
    "crawler": RateLimit(max_requests=20, window_seconds=60),
    "sse": RateLimit(max_requests=50, window_seconds=60),
    "default": RateLimit(max_requests=60, window_seconds=60),
}

MAX_KEYS = 10_000
CLEANUP_THRESHOLD = 5_000
CLEANUP_INTERVAL_SECONDS = 60.0
STALE_AFTER_SECONDS = 300.0


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int

    def headers(self) -> dict[str, str]:
        """HTTP headers for a response built from this decision."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def rate_limit_key(identity: str | None, route: str) -> str:
    return f"{identity or 'unknown'}:{route}"


class RateLimiter:
    """Per-key ring of recent request timestamps.

    Memory stays bounded under high key cardinality: a sweep drops stale
    timestamps (and emptied keys) once the key count passes
    `cleanup_threshold` or `cleanup_interval` has elapsed, and if the key
    count still exceeds `max_keys` the 10% of keys with the oldest first
    timestamp are evicted.
    """

    def __init__(
        self,
        *,
        max_keys: int = MAX_KEYS,
        cleanup_threshold: int = CLEANUP_THRESHOLD,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
        stale_after: float = STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_keys = max_keys
        self.cleanup_threshold = cleanup_threshold
        self.cleanup_interval = cleanup_interval
        self.stale_after = stale_after
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._last_cleanup = clock()

    def __len__(self) -> int:
        return len(self._requests)

    def admit(self, key: str, max_requests: int, window_seconds: float) -> bool:
        return self.check(key, max_requests, window_seconds).allowed

    def check(self, key: str, max_requests: int, window_seconds: float) -> AdmissionDecision:
        now = self._clock()

        if len(self._requests) > self.cleanup_threshold or now - self._last_cleanup > self.cleanup_interval:
            self._sweep(now)

        timestamps = [t for t in self._requests.get(key, ()) if now - t < window_seconds]

        if len(timestamps) >= max_requests:
            # The window reopens when its oldest timestamp falls out.
            wait = window_seconds - (now - timestamps[0]) if timestamps else window_seconds
            if timestamps:
                self._requests[key] = timestamps
            return AdmissionDecision(
                allowed=False,
                limit=max_requests,
                remaining=0,
                retry_after=max(1, math.ceil(wait)),
            )

        timestamps.append(now)
        self._requests[key] = timestamps

        if len(self._requests) > self.max_keys:
            self._evict_oldest()

        return AdmissionDecision(
            allowed=True,
            limit=max_requests,
            remaining=max_requests - len(timestamps),
            retry_after=0,
        )

    def enforce(self, key: str, limit: RateLimit = RATE_LIMITS["default"]) -> AdmissionDecision:
        """Like `check`, but raise CapacityError on refusal."""
        decision = self.check(key, limit.max_requests, limit.window_seconds)
        if not decision.allowed:
            logfire.warn('Rate limit exceeded for {key}', key=key, retry_after=decision.retry_after)
            raise CapacityError(key, decision.limit, decision.retry_after)
        return decision

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)

    def cleanup(self) -> int:
        """Run a sweep now. Returns the number of keys removed."""
        before = len(self._requests)
        self._sweep(self._clock())
        return before - len(self._requests)

    def stats(self) -> dict[str, float]:
        return {
            "total_keys": len(self._requests),
            "max_keys": self.max_keys,
            "last_cleanup": self._last_cleanup,
        }

    def _sweep(self, now: float) -> None:
        self._last_cleanup = now
        for key in list(self._requests):
            valid = [t for t in self._requests[key] if now - t < self.stale_after]
            if valid:
                self._requests[key] = valid
            else:
                del self._requests[key]

    def _evict_oldest(self) -> None:
        by_age = sorted(self._requests.items(), key=lambda kv: kv[1][0] if kv[1] else math.inf)
        for key, _ in by_age[: max(1, self.max_keys // 10)]:
            del self._requests[key]
        logfire.debug('Evicted rate limit keys', remaining=len(self._requests))
