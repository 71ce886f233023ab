import threading
import time

from brs.security.locks import KeyedLocks
from brs.security.rate_limit import FingerprintBurstTracker, FixedWindowRateLimiter

NOW = 1_772_442_000.0


def test_rate_limiter_allows_eight_then_blocks():
    limiter = FixedWindowRateLimiter(max_requests=8, window_seconds=300)

    results = [limiter.check("report:10.0.0.1", NOW + i) for i in range(9)]

    assert all(result.allowed for result in results[:8])
    assert results[7].remaining == 0
    assert results[8].allowed is False
    assert results[8].reset_at == NOW + 300


def test_rate_limiter_resets_after_window():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=300)

    assert limiter.check("key", NOW).allowed is True
    assert limiter.check("key", NOW + 299).allowed is False
    assert limiter.check("key", NOW + 300).allowed is True


def test_rate_limiter_keys_are_independent():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=300)

    assert limiter.check("report:10.0.0.1", NOW).allowed is True
    assert limiter.check("report:10.0.0.2", NOW).allowed is True


def test_burst_tracker_flags_fourth_report():
    tracker = FingerprintBurstTracker(threshold=4, window_seconds=300)

    flags = [tracker.register("d" * 64, NOW + i) for i in range(5)]

    assert flags == [False, False, False, True, True]


def test_burst_tracker_resets_after_window():
    tracker = FingerprintBurstTracker(threshold=2, window_seconds=300)

    assert tracker.register("fp", NOW) is False
    assert tracker.register("fp", NOW + 301) is False
    assert tracker.register("fp", NOW + 302) is True


def test_reset_clears_state():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=300)
    limiter.check("key", NOW)
    limiter.reset()

    assert len(limiter) == 0
    assert limiter.check("key", NOW).allowed is True


def test_expired_buckets_are_swept():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=300)
    for i in range(5):
        limiter.check(f"report:10.0.0.{i}", NOW)

    assert len(limiter) == 5

    limiter.check("report:10.0.1.1", NOW + 300)

    assert len(limiter) == 1


def test_burst_tracker_sweeps_stale_fingerprints():
    tracker = FingerprintBurstTracker(threshold=4, window_seconds=300)
    tracker.register("a" * 64, NOW)
    tracker.register("b" * 64, NOW + 1)

    tracker.register("c" * 64, NOW + 302)

    assert len(tracker) == 1


def test_keyed_locks_serialize_one_key():
    locks = KeyedLocks()
    counter = {"value": 0}

    def bump():
        for _ in range(50):
            with locks.hold("bike_group:1"):
                current = counter["value"]
                time.sleep(0)
                counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter["value"] == 400


def test_keyed_locks_drop_released_keys():
    locks = KeyedLocks()

    with locks.hold("bike_group:1"):
        with locks.hold("bike_group:2"):
            assert len(locks) == 2

    assert len(locks) == 0


def test_rate_limiter_admits_exactly_max_across_threads():
    limiter = FixedWindowRateLimiter(max_requests=8, window_seconds=300)
    barrier = threading.Barrier(8)
    results = []

    def submit():
        barrier.wait()
        for _ in range(10):
            results.append(limiter.check("report:10.0.0.1", NOW))

    threads = [threading.Thread(target=submit) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 80
    assert sum(1 for result in results if result.allowed) == 8
