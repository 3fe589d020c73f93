"""Two-tier rate limiter: per-destination buckets behind one system-wide bucket.

A send proceeds only if BOTH tiers grant.  The destination tier is asked
first so a single noisy group throttles only itself; if the system tier
then refuses, the destination tokens are handed back so a global stall
does not also drain every group's own allowance.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from group_facilitator.foundation.clock import monotonic
from group_facilitator.ratelimit.token_bucket import TokenBucket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketConfig:
    """Shape of a bucket: capacity and refill cadence."""

    capacity: int
    refill_tokens: float = 1.0
    refill_interval: float = 1.0


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    scope: Optional[Literal["destination", "system"]] = None
    retry_after: float = 0.0


class TwoTierLimiter:
    """System-wide bucket plus lazily created per-destination buckets.

    Args:
        system: Config of the single system-wide bucket.
        destination: Config applied to every per-destination bucket.
        clock: Monotonic seconds source shared by all buckets.
    """

    def __init__(
        self,
        system: BucketConfig,
        destination: BucketConfig,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._clock = clock
        self._destination_config = destination
        self._system = TokenBucket(
            system.capacity,
            system.refill_tokens,
            system.refill_interval,
            clock=clock,
            name="system",
        )
        self._lock = threading.Lock()
        self._destinations: dict[str, TokenBucket] = {}

    # ── Public API ───────────────────────────────────────────────────────

    def acquire(self, destination_id: str, n: int = 1) -> RateDecision:
        """Try to take *n* tokens from both tiers for *destination_id*."""
        bucket = self._bucket_for(destination_id)

        if not bucket.consume(n):
            wait = bucket.wait_time(n)
            logger.info(
                "Destination %s rate limited, retry in %.1fs", destination_id, wait,
            )
            return RateDecision(allowed=False, scope="destination", retry_after=wait)

        if not self._system.consume(n):
            bucket.refund(n)
            wait = self._system.wait_time(n)
            logger.warning("System-wide rate limit reached, retry in %.1fs", wait)
            return RateDecision(allowed=False, scope="system", retry_after=wait)

        return RateDecision(allowed=True)

    def discard(self, destination_id: str) -> bool:
        """Drop a destination's bucket when its group is torn down."""
        with self._lock:
            return self._destinations.pop(destination_id, None) is not None

    @property
    def system_bucket(self) -> TokenBucket:
        return self._system

    def destination_bucket(self, destination_id: str) -> TokenBucket:
        return self._bucket_for(destination_id)

    @property
    def tracked_destinations(self) -> int:
        with self._lock:
            return len(self._destinations)

    def status(self) -> dict:
        return {
            "system": self._system.status(),
            "destinations": self.tracked_destinations,
        }

    # ── Internals ────────────────────────────────────────────────────────

    def _bucket_for(self, destination_id: str) -> TokenBucket:
        with self._lock:
            bucket = self._destinations.get(destination_id)
            if bucket is None:
                cfg = self._destination_config
                bucket = TokenBucket(
                    cfg.capacity,
                    cfg.refill_tokens,
                    cfg.refill_interval,
                    clock=self._clock,
                    name=f"destination:{destination_id}",
                )
                self._destinations[destination_id] = bucket
                logger.debug("Created rate bucket for destination %s", destination_id)
            return bucket
