"""Distress ledger: creates, updates and transitions DistressEvents.

Rules:
    - Scores below the informational threshold leave no trace.
    - An open (new/assigned) event for the same group and user absorbs a
      further distress message instead of spawning a duplicate.
    - Every change is persisted through the AlertRepository outside the
      ledger lock; a repository failure is logged and the in-memory record
      stays authoritative until the next successful save.
    - Events are never deleted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from group_facilitator.domain.distress import DistressAssessment, DistressEvent
from group_facilitator.domain.enums import DistressTier, ResolutionStatus
from group_facilitator.domain.events import OperatorEvent
from group_facilitator.domain.messages import InboundMessage
from group_facilitator.notify.operator_channel import OperatorChannel
from group_facilitator.store.repository import AlertRepository

logger = logging.getLogger(__name__)


class UnknownDistressEvent(KeyError):
    """Raised when an operator action names an event the ledger never saw."""


class DistressLedger:
    """Async-safe registry of DistressEvents.

    Args:
        repository: Persistent alert store.
        channel: Operator channel for "distress detected" events.
    """

    def __init__(
        self,
        repository: AlertRepository,
        channel: OperatorChannel | None = None,
    ) -> None:
        self._repository = repository
        self._channel = channel
        self._lock = asyncio.Lock()
        self._events: dict[str, DistressEvent] = {}

    # ── Detection ────────────────────────────────────────────────────

    async def record(
        self,
        assessment: DistressAssessment,
        message: InboundMessage,
    ) -> Optional[DistressEvent]:
        """Create or update the event for a scored message."""
        if assessment.tier == DistressTier.NONE:
            return None

        async with self._lock:
            event = self._open_event_for(message.group_id, message.user_id, message.sender_id)
            if event is None:
                event = DistressEvent(
                    group_id=message.group_id,
                    user_id=message.user_id,
                    sender_id=message.sender_id,
                    message_id=message.message_id,
                    message_text=message.text,
                    score=assessment.score,
                    tier=assessment.tier,
                )
                self._events[event.event_id] = event
                created = True
            else:
                event.escalate(assessment.score, assessment.tier, message.message_id, message.text)
                created = False
            stored = event.model_copy(deep=True)

        logger.warning(
            "Distress %s in group %s (score=%.2f, tier=%s, event=%s)",
            "detected" if created else "repeated",
            message.group_id,
            assessment.score,
            assessment.tier.value,
            stored.event_id,
        )
        await self._persist(stored)
        if self._channel is not None:
            self._channel.publish(OperatorEvent.distress_detected(
                group_id=message.group_id,
                tier=assessment.tier,
                user_id=message.user_id or message.sender_id,
                event_id=stored.event_id,
                score=round(assessment.score, 4),
                occurrences=stored.occurrences,
            ))
        return stored

    # ── Operator actions ─────────────────────────────────────────────

    async def assign(self, event_id: str, operator_id: str) -> DistressEvent:
        return await self._transition(event_id, lambda e: e.assign(operator_id))

    async def resolve(self, event_id: str, notes: str = "") -> DistressEvent:
        return await self._transition(event_id, lambda e: e.resolve(notes))

    async def mark_false_positive(self, event_id: str, notes: str = "") -> DistressEvent:
        return await self._transition(event_id, lambda e: e.mark_false_positive(notes))

    # ── Queries ──────────────────────────────────────────────────────

    async def get(self, event_id: str) -> Optional[DistressEvent]:
        async with self._lock:
            event = self._events.get(event_id)
            return event.model_copy(deep=True) if event else None

    async def list(
        self,
        status: ResolutionStatus | None = None,
        group_id: str | None = None,
    ) -> list[DistressEvent]:
        """Events, newest first, optionally filtered."""
        async with self._lock:
            events = [
                e.model_copy(deep=True)
                for e in self._events.values()
                if (status is None or e.status == status)
                and (group_id is None or e.group_id == group_id)
            ]
        return sorted(events, key=lambda e: e.created_at, reverse=True)

    async def open_count(self) -> int:
        async with self._lock:
            return sum(1 for e in self._events.values() if e.is_open)

    # ── Internals ────────────────────────────────────────────────────

    def _open_event_for(
        self,
        group_id: str,
        user_id: str | None,
        sender_id: str,
    ) -> Optional[DistressEvent]:
        """Must be called while holding self._lock."""
        for event in self._events.values():
            if (
                event.is_open
                and event.group_id == group_id
                and event.sender_id == sender_id
                and event.user_id == user_id
            ):
                return event
        return None

    async def _transition(self, event_id: str, action) -> DistressEvent:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise UnknownDistressEvent(event_id)
            action(event)
            stored = event.model_copy(deep=True)
        logger.info("Distress event %s is now %s", event_id, stored.status.value)
        await self._persist(stored)
        return stored

    async def _persist(self, event: DistressEvent) -> None:
        try:
            await self._repository.save_alert(event)
        except Exception as exc:
            logger.warning("Could not persist distress event %s: %s", event.event_id, exc)
