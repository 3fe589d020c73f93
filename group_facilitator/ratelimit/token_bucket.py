"""Token bucket: a gate, not a buffer.

Design notes:
    - Refill is lazy and time-driven: every consume/peek first credits
      ``floor(elapsed * rate / interval)`` whole tokens and, if any were
      credited, moves the refill mark to *now*.  No background timer.
    - One lock per bucket makes refill+consume a single critical section,
      so concurrent callers never lose or double-count tokens.  The lock
      never wraps I/O; holding it is a few arithmetic operations.
    - A denied consume has no effect beyond the refill.  There is no
      internal queue; callers own their retry policy and can ask how long
      to wait.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable

from group_facilitator.foundation.clock import monotonic

logger = logging.getLogger(__name__)


class TokenBucket:
    """Classic token bucket over a monotonic clock.

    Args:
        capacity: Maximum tokens held (and the starting balance).
        refill_tokens: Tokens credited per *refill_interval*.
        refill_interval: Seconds per refill step.
        clock: Monotonic seconds source; injectable for tests.
        name: Label used in logs.
    """

    def __init__(
        self,
        capacity: int,
        refill_tokens: float = 1.0,
        refill_interval: float = 1.0,
        clock: Callable[[], float] = monotonic,
        name: str = "bucket",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_tokens <= 0:
            raise ValueError("refill_tokens must be positive")
        if refill_interval <= 0:
            raise ValueError("refill_interval must be positive")

        self._capacity = int(capacity)
        self._rate = float(refill_tokens)
        self._interval = float(refill_interval)
        self._clock = clock
        self._name = name
        self._lock = threading.Lock()
        self._tokens = self._capacity
        self._last_refill = clock()

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str:
        return self._name

    def consume(self, n: int = 1) -> bool:
        """Take *n* tokens if available.  Returns False (and takes none) otherwise."""
        self._check_request(n)
        with self._lock:
            self._refill()
            if self._tokens >= n:
                self._tokens -= n
                return True
            return False

    def has_tokens(self, n: int = 1) -> bool:
        """Read-only availability check (refill still happens)."""
        self._check_request(n)
        with self._lock:
            self._refill()
            return self._tokens >= n

    def peek(self) -> int:
        """Current whole-token balance after refill."""
        with self._lock:
            self._refill()
            return self._tokens

    def wait_time(self, n: int = 1) -> float:
        """Seconds until *n* tokens will exist, assuming no other consumers."""
        self._check_request(n)
        with self._lock:
            self._refill()
            return self._wait_time_locked(n)

    def refund(self, n: int = 1) -> None:
        """Return tokens taken for a send that did not go ahead (clamped)."""
        if n < 1:
            return
        with self._lock:
            self._tokens = min(self._capacity, self._tokens + n)

    def status(self) -> dict:
        with self._lock:
            self._refill()
            return {
                "name": self._name,
                "capacity": self._capacity,
                "available_tokens": self._tokens,
                "refill_tokens": self._rate,
                "refill_interval_seconds": self._interval,
            }

    # ── Internals ────────────────────────────────────────────────────────

    def _refill(self) -> None:
        """Must be called while holding self._lock."""
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed < 0:
            # Monotonic clocks do not go backwards; an injected one might.
            self._last_refill = now
            return
        to_add = math.floor(elapsed * self._rate / self._interval)
        if to_add > 0:
            self._tokens = min(self._capacity, self._tokens + to_add)
            self._last_refill = now
        if not 0 <= self._tokens <= self._capacity:
            logger.error(
                "Token bucket %s out of bounds (%d/%d), clamping",
                self._name, self._tokens, self._capacity,
            )
            self._tokens = max(0, min(self._tokens, self._capacity))

    def _wait_time_locked(self, n: int) -> float:
        deficit = n - self._tokens
        if deficit <= 0:
            return 0.0
        steps = math.ceil(deficit / self._rate)
        elapsed = self._clock() - self._last_refill
        return max(0.0, steps * self._interval - elapsed)

    def _check_request(self, n: int) -> None:
        if n < 1:
            raise ValueError("token request must be at least 1")
        if n > self._capacity:
            raise ValueError(
                f"request for {n} tokens can never be met by {self._name} (capacity {self._capacity})"
            )

    def __repr__(self) -> str:
        return (
            f"TokenBucket(name={self._name}, tokens={self._tokens}/{self._capacity}, "
            f"rate={self._rate}/{self._interval}s)"
        )
