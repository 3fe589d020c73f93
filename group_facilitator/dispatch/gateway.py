"""DispatchGateway: the single exit for outbound facilitator messages.

Every send passes the two-tier token-bucket gate first.  A denial is
returned as a RateLimited value and the client is never called; a grant
delegates to the client and returns its result unchanged.  The gateway
never queues, retries or drops: backoff is the caller's policy.

Group orchestration calls (create group, add/remove member) pass through
to the client without touching the rate limiter.
"""

from __future__ import annotations

import logging
from typing import Any

from group_facilitator.dispatch.client import MessagingClient
from group_facilitator.domain.delivery import DispatchResult, RateLimited
from group_facilitator.ratelimit.limiter import TwoTierLimiter

logger = logging.getLogger(__name__)


class DispatchGateway:
    def __init__(self, limiter: TwoTierLimiter, client: MessagingClient) -> None:
        self._limiter = limiter
        self._client = client
        self.sent = 0
        self.rate_limited = 0

    async def send(self, destination_id: str, text: str) -> DispatchResult:
        decision = self._limiter.acquire(destination_id)
        if not decision.allowed:
            self.rate_limited += 1
            logger.warning(
                "Send to %s rate limited (%s tier), retry after %.1fs",
                destination_id, decision.scope, decision.retry_after,
            )
            return RateLimited(
                destination_id=destination_id,
                scope=decision.scope,
                retry_after_seconds=decision.retry_after,
            )

        result = await self._client.send_to_destination(destination_id, text)
        self.sent += 1
        logger.debug("Dispatched message to %s", destination_id)
        return result

    # ── Orchestration pass-through ───────────────────────────────────

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]:
        logger.info("Creating platform group %r with %d participants", name, len(participants))
        return await self._client.create_group(name, participants)

    async def add_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        return await self._client.add_member(destination_id, member_id)

    async def remove_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        return await self._client.remove_member(destination_id, member_id)

    def forget(self, destination_id: str) -> None:
        """Drop the destination's bucket when its group is torn down."""
        self._limiter.discard(destination_id)

    def status(self) -> dict:
        return {"sent": self.sent, "rate_limited": self.rate_limited, **self._limiter.status()}
