"""Tests for the fixed-window rate limiter."""

import threading

import pytest

from zeropad.errors import RateLimitedError
from zeropad.rate_limit import (
    CREATE_DOCUMENT, GET_DOCUMENT, RATE_LIMITS, UPDATE_DOCUMENT,
    MemoryRateLimitStore, RateLimitPolicy, RateLimiter
)


@pytest.fixture
def limiter(clock):
    policies = {'test': RateLimitPolicy(interval=60, max_requests=3)}
    return RateLimiter(MemoryRateLimitStore(), policies, clock=clock)


class TestPolicies:

    def test_default_table(self):
        assert RATE_LIMITS[CREATE_DOCUMENT] == RateLimitPolicy(3600, 10)
        assert RATE_LIMITS[UPDATE_DOCUMENT] == RateLimitPolicy(3600, 30)
        assert RATE_LIMITS[GET_DOCUMENT] == RateLimitPolicy(3600, 100)

    def test_unknown_endpoint(self, limiter):
        with pytest.raises(KeyError):
            limiter.check('1.2.3.4', 'nope')


class TestFixedWindow:

    def test_nth_admitted_and_next_rejected(self, limiter):
        for expected_remaining in (2, 1, 0):
            result = limiter.enforce('1.2.3.4', 'test')
            assert result.success
            assert result.remaining == expected_remaining
            assert result.limit == 3

        with pytest.raises(RateLimitedError) as excinfo:
            limiter.enforce('1.2.3.4', 'test')

        assert excinfo.value.result.success is False
        assert excinfo.value.result.remaining == 0

    def test_rejections_keep_counting(self, limiter):
        for _ in range(3):
            limiter.check('1.2.3.4', 'test')
        assert not limiter.check('1.2.3.4', 'test').success
        assert not limiter.check('1.2.3.4', 'test').success

    def test_reset_time_is_window_start_plus_interval(self, limiter, clock):
        start = clock.now
        result = limiter.check('1.2.3.4', 'test')
        clock.advance(30)
        later = limiter.check('1.2.3.4', 'test')

        assert result.reset == start + 60
        assert later.reset == start + 60

    def test_retry_after(self, limiter, clock):
        for _ in range(3):
            limiter.enforce('1.2.3.4', 'test')
        clock.advance(20.5)

        with pytest.raises(RateLimitedError) as excinfo:
            limiter.enforce('1.2.3.4', 'test')

        assert excinfo.value.retry_after == 40

    def test_still_blocked_just_before_reset(self, limiter, clock):
        for _ in range(3):
            limiter.enforce('1.2.3.4', 'test')
        clock.advance(59.9)
        with pytest.raises(RateLimitedError):
            limiter.enforce('1.2.3.4', 'test')

    def test_window_resets_at_reset_time(self, limiter, clock):
        for _ in range(4):
            limiter.check('1.2.3.4', 'test')

        clock.advance(60)
        result = limiter.enforce('1.2.3.4', 'test')

        assert result.success
        assert result.remaining == 2
        assert limiter.store.get('1.2.3.4:test').count == 1

    def test_boundary_burst_allows_twice_the_limit(self, limiter, clock):
        """Known weakness of fixed windows."""
        assert limiter.check('ip', 'test').success
        clock.advance(59)
        burst = sum(limiter.check('ip', 'test').success for _ in range(2))
        clock.advance(1)
        burst += sum(limiter.check('ip', 'test').success for _ in range(3))
        assert burst == 5

    def test_identifiers_are_independent(self, limiter):
        for _ in range(3):
            limiter.enforce('1.1.1.1', 'test')
        assert limiter.enforce('2.2.2.2', 'test').success

    def test_endpoints_are_independent(self, clock):
        policies = {
            'a': RateLimitPolicy(60, 1),
            'b': RateLimitPolicy(60, 1),
        }
        limiter = RateLimiter(MemoryRateLimitStore(), policies, clock=clock)
        limiter.enforce('ip', 'a')
        assert limiter.enforce('ip', 'b').success


class TestSweep:

    def test_expired_windows_are_swept(self, clock):
        store = MemoryRateLimitStore()
        policies = {'test': RateLimitPolicy(interval=60, max_requests=3)}
        limiter = RateLimiter(store, policies, clock=clock, sweep_interval=600)

        for ip in ('a', 'b', 'c'):
            limiter.check(ip, 'test')
        assert len(store) == 3

        clock.advance(600)
        limiter.check('d', 'test')

        assert len(store) == 1
        assert store.get('d:test') is not None

    def test_live_windows_survive_sweep(self, clock):
        store = MemoryRateLimitStore()
        store.hit('live', 1000, clock.now)
        store.hit('dead', 10, clock.now)

        removed = store.sweep(clock.now + 10)

        assert removed == 1
        assert store.get('live') is not None
        assert store.get('dead') is None

    def test_sweep_failure_does_not_block_requests(self, clock):
        class BrokenSweepStore(MemoryRateLimitStore):
            def sweep(self, now):
                raise RuntimeError("boom")

        policies = {'test': RateLimitPolicy(interval=60, max_requests=3)}
        limiter = RateLimiter(BrokenSweepStore(), policies, clock=clock, sweep_interval=1)
        clock.advance(5)

        assert limiter.check('ip', 'test').success


class TestConcurrency:

    def test_concurrent_hits_are_all_counted(self):
        store = MemoryRateLimitStore()
        policies = {'test': RateLimitPolicy(interval=3600, max_requests=10_000)}
        limiter = RateLimiter(store, policies)

        def worker():
            for _ in range(250):
                limiter.check('ip', 'test')

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get('ip:test').count == 2000
