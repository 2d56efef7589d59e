import logging
import time
from collections import deque
from functools import wraps

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window limiter for outbound feed calls.

    Keeps the timestamps of the last ``max_calls`` calls in a ring buffer;
    a call that would exceed ``max_calls`` within ``period`` seconds sleeps
    until the oldest one leaves the window. The clock and sleep function are
    injected so the limiter can be driven by a fake clock in tests.
    """

    def __init__(self, max_calls, period, clock=None, sleep=None):
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if period <= 0:
            raise ValueError("period must be positive")
        self.max_calls = max_calls
        self.period = period
        self.clock = clock or time.monotonic
        self.sleep = sleep or time.sleep
        self.calls = deque(maxlen=max_calls)
        self.total_calls = 0
        self.total_wait = 0.0

    def _wait_time(self, now):
        if len(self.calls) < self.max_calls:
            return 0.0
        elapsed = now - self.calls[0]
        return max(0.0, self.period - elapsed)

    def acquire(self):
        """Block until a call is allowed, then record it. Returns seconds waited."""
        now = self.clock()
        wait = self._wait_time(now)
        if wait > 0:
            logger.info(f"Rate limit reached. Sleeping for {wait:.1f}s")
            self.sleep(wait)
            now = self.clock()

        self.calls.append(now)
        self.total_calls += 1
        self.total_wait += wait
        return wait

    def __call__(self, func):
        """Decorator form: acquire before every call to func"""

        @wraps(func)
        def wrapper(*args, **kwargs):
            self.acquire()
            return func(*args, **kwargs)

        return wrapper

    def status(self):
        """Current limiter status"""
        now = self.clock()
        in_window = sum(1 for ts in self.calls if now - ts < self.period)
        return {
            "total_requests": self.total_calls,
            "requests_in_window": in_window,
            "max_calls": self.max_calls,
            "period": self.period,
            "total_wait": round(self.total_wait, 3),
        }
