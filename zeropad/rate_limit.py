"""
Fixed-window rate limiting for the document API.

Counters are keyed by "<identifier>:<endpoint>". The identifier is the client
IP for create and read, and the document id for update, so rotating source
addresses does not help when spamming a single document.

On the first request for a key, or once now >= reset_time, the window resets
to count=0 and reset_time=now+interval. Every request increments the count
and is admitted iff count <= max_requests. Up to 2 * max_requests can get
through around a window boundary.

The store is in-process. Several app instances each keep their own counters.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, replace

from zeropad.errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    interval: float      # window length in seconds
    max_requests: int


CREATE_DOCUMENT = 'create_document'
UPDATE_DOCUMENT = 'update_document'
GET_DOCUMENT = 'get_document'

RATE_LIMITS = {
    # 10 documents per hour per IP
    CREATE_DOCUMENT: RateLimitPolicy(interval=60 * 60, max_requests=10),
    # 30 updates per hour per document
    UPDATE_DOCUMENT: RateLimitPolicy(interval=60 * 60, max_requests=30),
    # 100 views per hour per IP
    GET_DOCUMENT: RateLimitPolicy(interval=60 * 60, max_requests=100),
}

SWEEP_INTERVAL_SECONDS = 10 * 60


@dataclass(frozen=True)
class RateLimitWindow:
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float         # epoch seconds at which the window resets


class MemoryRateLimitStore:
    """
    In-process window store.

    All reads and writes go through one lock so concurrent requests never
    under-count a window.
    """

    def __init__(self):
        self._windows = {}
        self._lock = threading.Lock()

    def hit(self, key, interval, now):
        """Count one request for `key` and return the window after the increment."""
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_time:
                window = RateLimitWindow(count=0, reset_time=now + interval)
            window = replace(window, count=window.count + 1)
            self._windows[key] = window
            return window

    def sweep(self, now):
        """Drop expired windows. Returns how many were removed."""
        with self._lock:
            expired = [key for key, window in self._windows.items()
                       if window.reset_time <= now]
            for key in expired:
                del self._windows[key]
            return len(expired)

    def get(self, key):
        with self._lock:
            return self._windows.get(key)

    def __len__(self):
        with self._lock:
            return len(self._windows)


class RateLimiter:
    """
    Admission control shared by the document operations.

    Args:
        store: Window store (MemoryRateLimitStore or compatible)
        policies: Mapping of endpoint name to RateLimitPolicy
        clock: Callable returning the current time in epoch seconds
        sweep_interval: Seconds between sweeps of expired windows
    """

    def __init__(self, store=None, policies=None, clock=time.time,
                 sweep_interval=SWEEP_INTERVAL_SECONDS):
        self.store = store if store is not None else MemoryRateLimitStore()
        self.policies = dict(RATE_LIMITS if policies is None else policies)
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def check(self, identifier, endpoint):
        """
        Count a request and report whether it is admitted.

        Raises:
            KeyError: If no policy exists for `endpoint`
        """
        policy = self.policies[endpoint]
        now = self.clock()
        self._maybe_sweep(now)

        window = self.store.hit(f"{identifier}:{endpoint}", policy.interval, now)

        return RateLimitResult(
            success=window.count <= policy.max_requests,
            limit=policy.max_requests,
            remaining=max(0, policy.max_requests - window.count),
            reset=window.reset_time,
        )

    def enforce(self, identifier, endpoint):
        """
        Like check, but raise when the request is over the limit.

        Raises:
            RateLimitedError: Carrying the result and the seconds until reset
        """
        result = self.check(identifier, endpoint)
        if not result.success:
            retry_after = max(0, math.ceil(result.reset - self.clock()))
            raise RateLimitedError(result, retry_after=retry_after)
        return result

    def _maybe_sweep(self, now):
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        try:
            removed = self.store.sweep(now)
            logger.debug("Rate limit sweep removed %d expired windows", removed)
        except Exception:
            # Housekeeping only; admission decisions do not depend on it
            logger.warning("Rate limit sweep failed", exc_info=True)
