"""Operator channel: pushes structured engine events to human operators.

Architecture:
    engine  →  publish(event)   (returns immediately)
                    ↓
               background task broadcasts to /ws/operators clients
                    ↓
    ops UI  ←  JSON event       and a bounded audit buffer for GET /api/events

Publishing is fire-and-forget: the decision path never waits on, or fails
because of, a slow or broken operator connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Protocol

from group_facilitator.domain.events import OperatorEvent

logger = logging.getLogger(__name__)


class EventSubscriber(Protocol):
    """Anything that can receive a JSON payload (e.g. a FastAPI WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...


class OperatorChannel:
    """Tracks connected operator clients and broadcasts events to them."""

    def __init__(self, buffer_size: int = 200) -> None:
        self._subscribers: set[EventSubscriber] = set()
        self._recent: deque[OperatorEvent] = deque(maxlen=buffer_size)
        self._background: set[asyncio.Task] = set()
        self.published = 0

    # ── Client management ────────────────────────────────────────────

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.add(subscriber)
        logger.info("Operator client connected (%d total)", len(self._subscribers))

    def unsubscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.discard(subscriber)
        logger.info("Operator client disconnected (%d remaining)", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ── Publishing ───────────────────────────────────────────────────

    def publish(self, event: OperatorEvent) -> None:
        """Record *event* and schedule delivery.  Never blocks, never raises."""
        self._recent.append(event)
        self.published += 1
        logger.info(
            "Operator event %s for group %s", event.kind.value, event.group_id,
        )
        if not self._subscribers:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._broadcast(event))
        except RuntimeError:
            logger.warning("No running loop; operator event %s kept in audit buffer only", event.event_id)
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def recent(self, limit: int | None = None) -> list[OperatorEvent]:
        events = list(self._recent)
        if limit is None:
            return events
        return events[-limit:] if limit > 0 else []

    async def drain(self) -> None:
        """Wait for in-flight broadcasts (used at shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _broadcast(self, event: OperatorEvent) -> None:
        payload = event.model_dump(mode="json")
        for subscriber in list(self._subscribers):
            try:
                await subscriber.send_json(payload)
            except Exception as exc:
                logger.warning("Dropping operator client after send failure: %s", exc)
                self._subscribers.discard(subscriber)
