"""Fixed-window counters for submission rate limiting and burst detection."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from brs.security.locks import KeyedLocks

REPORT_RATE_LIMIT_REQUESTS = 8
REPORT_RATE_LIMIT_WINDOW_SECONDS = 5 * 60
FINGERPRINT_BURST_THRESHOLD = 4


@dataclass
class WindowBucket:
    starts_at: float
    count: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class _WindowCounter:
    """Per-key buckets with per-key locking.

    Expired buckets are swept at most once per window, one key lock at a
    time, so idle keys do not accumulate.
    """

    def __init__(self, window_seconds: float) -> None:
        self.window_seconds = window_seconds
        self._buckets: dict[str, WindowBucket] = {}
        self._guard = threading.Lock()
        self._locks = KeyedLocks()
        self._last_sweep: Optional[float] = None

    def _expired(self, bucket: WindowBucket, now: float) -> bool:
        raise NotImplementedError

    def _open_bucket(self, key: str, now: float) -> WindowBucket:
        bucket = WindowBucket(starts_at=now, count=1)
        with self._guard:
            self._buckets[key] = bucket
        return bucket

    def _sweep(self, now: float) -> None:
        with self._guard:
            if self._last_sweep is not None and now - self._last_sweep < self.window_seconds:
                return
            self._last_sweep = now
            keys = list(self._buckets)

        for key in keys:
            with self._locks.hold(key):
                bucket = self._buckets.get(key)
                if bucket is not None and self._expired(bucket, now):
                    with self._guard:
                        del self._buckets[key]

    def reset(self) -> None:
        with self._guard:
            self._buckets.clear()
            self._last_sweep = None

    def __len__(self) -> int:
        with self._guard:
            return len(self._buckets)


class FixedWindowRateLimiter(_WindowCounter):
    """Allow ``max_requests`` per key within a window that starts on first use."""

    def __init__(
        self,
        max_requests: int = REPORT_RATE_LIMIT_REQUESTS,
        window_seconds: float = REPORT_RATE_LIMIT_WINDOW_SECONDS,
    ) -> None:
        super().__init__(window_seconds)
        self.max_requests = max_requests

    def _expired(self, bucket: WindowBucket, now: float) -> bool:
        return now - bucket.starts_at >= self.window_seconds

    def check(self, key: str, now: float) -> RateLimitResult:
        """Count one request for ``key`` at epoch seconds ``now``."""
        with self._locks.hold(key):
            bucket = self._buckets.get(key)
            if bucket is None or self._expired(bucket, now):
                bucket = self._open_bucket(key, now)
            else:
                bucket.count += 1
            result = RateLimitResult(
                allowed=bucket.count <= self.max_requests,
                remaining=max(0, self.max_requests - bucket.count),
                reset_at=bucket.starts_at + self.window_seconds,
            )

        self._sweep(now)
        return result


class FingerprintBurstTracker(_WindowCounter):
    """Flag fingerprints that submit ``threshold`` reports within one window.

    Bursts flag the current report for review; they never reject it.
    """

    def __init__(
        self,
        threshold: int = FINGERPRINT_BURST_THRESHOLD,
        window_seconds: float = REPORT_RATE_LIMIT_WINDOW_SECONDS,
    ) -> None:
        super().__init__(window_seconds)
        self.threshold = threshold

    def _expired(self, bucket: WindowBucket, now: float) -> bool:
        return now - bucket.starts_at > self.window_seconds

    def register(self, fingerprint_hash: str, now: float) -> bool:
        with self._locks.hold(fingerprint_hash):
            bucket = self._buckets.get(fingerprint_hash)
            if bucket is None or self._expired(bucket, now):
                bucket = self._open_bucket(fingerprint_hash, now)
            else:
                bucket.count += 1
            flagged = bucket.count >= self.threshold

        self._sweep(now)
        return flagged
