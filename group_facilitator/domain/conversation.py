"""ConversationState: the live, in-memory picture of one group's conversation.

A ConversationState is NOT persisted.  It is rebuilt from scratch after a
restart by observing the next incoming messages.  It carries the facts the
intervention decision needs: how much was said, by whom, in what mood,
and when the facilitator last spoke.

Phases (derived, never stored):
    - cooling_down:        the facilitator spoke within the cooldown window
    - quiet:               too few messages since the last intervention
    - needs_intervention:  a run of negative messages is in progress
    - normal:              everything else
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from group_facilitator.domain.enums import ConversationPhase
from group_facilitator.domain.messages import RecentMessage
from group_facilitator.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class ConversationSnapshot(BaseModel):
    """Immutable point-in-time copy of a ConversationState."""

    group_id: str
    message_count: int
    last_message_at: Optional[datetime] = None
    participant_count: int
    recent_messages: list[RecentMessage] = Field(default_factory=list)
    sentiment_average: float = Field(..., ge=-1.0, le=1.0)
    consecutive_negative: int
    last_intervention_at: Optional[datetime] = None
    messages_since_intervention: int
    topics: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def recent_texts(self) -> list[str]:
        return [m.text for m in self.recent_messages]


class ConversationState:
    """Mutable per-group conversation tracker.

    Thread-safety note:
        Individual ConversationState objects are mutated *only* while the
        caller holds the ConversationStore's per-group lock.  They are not
        themselves locked.
    """

    __slots__ = (
        "group_id",
        "created_at",
        "message_count",
        "last_message_at",
        "participants",
        "sentiment_average",
        "consecutive_negative",
        "last_intervention_at",
        "last_intervention_message_count",
        "topics",
        "_recent",
        "_claimed",
    )

    def __init__(self, group_id: str, buffer_size: int = 10, claimed_history: int = 64) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.group_id = group_id
        self.created_at: datetime = utc_now()
        self.message_count: int = 0
        self.last_message_at: datetime | None = None
        self.participants: set[str] = set()
        self.sentiment_average: float = 0.0
        self.consecutive_negative: int = 0
        self.last_intervention_at: datetime | None = None
        self.last_intervention_message_count: int = 0
        self.topics: list[str] = []
        self._recent: deque[RecentMessage] = deque(maxlen=buffer_size)
        # Keys of recently claimed triggers, oldest evicted first
        self._claimed: deque[str] = deque(maxlen=max(claimed_history, 1))

    # ── Mutation ─────────────────────────────────────────────────────────

    def record(
        self,
        sender: str,
        text: str,
        timestamp: datetime,
        sentiment: float | None = None,
        *,
        new_weight: float = 0.3,
        negative_threshold: float = -0.3,
    ) -> None:
        """Account for one inbound message.

        *sentiment* is None when the analyzer was unavailable; the moving
        average and the negative run are then left untouched.
        """
        self.message_count += 1
        self.last_message_at = timestamp
        self.participants.add(sender)
        self._recent.append(RecentMessage(sender, text, timestamp))

        if sentiment is None:
            return

        sample = _clamp(sentiment)
        if sample != sentiment:
            logger.error(
                "Sentiment %.3f out of range for group %s, clamped to %.3f",
                sentiment, self.group_id, sample,
            )
        averaged = self.sentiment_average * (1.0 - new_weight) + sample * new_weight
        self.sentiment_average = _clamp(averaged)

        if sample < negative_threshold:
            self.consecutive_negative += 1
        else:
            self.consecutive_negative = 0

    def mark_intervention(self, at: datetime, trigger_key: str | None = None) -> None:
        """Record that the facilitator has claimed an intervention slot."""
        self.last_intervention_at = at
        self.last_intervention_message_count = self.message_count
        if trigger_key is not None and trigger_key not in self._claimed:
            self._claimed.append(trigger_key)

    def replace_topics(self, topics: list[str], limit: int = 5) -> None:
        self.topics = [t for t in topics if t][:limit]

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def recent_messages(self) -> list[RecentMessage]:
        """Read-only view of the bounded buffer, oldest first."""
        return list(self._recent)

    @property
    def last_claimed_trigger(self) -> str | None:
        return self._claimed[-1] if self._claimed else None

    def has_claimed(self, trigger_key: str) -> bool:
        """True if *trigger_key* is among the recently claimed triggers."""
        return trigger_key in self._claimed

    @property
    def messages_since_intervention(self) -> int:
        return self.message_count - self.last_intervention_message_count

    def in_cooldown(self, now: datetime, cooldown: timedelta) -> bool:
        if self.last_intervention_at is None:
            return False
        return (now - self.last_intervention_at) < cooldown

    def single_speaker(self, min_messages: int = 2) -> bool:
        """True if one participant authored every buffered message."""
        if len(self._recent) < min_messages:
            return False
        return len({m.sender for m in self._recent}) == 1

    def phase(
        self,
        now: datetime,
        cooldown: timedelta,
        min_messages: int = 3,
        negative_trigger: int = 3,
    ) -> ConversationPhase:
        if self.in_cooldown(now, cooldown):
            return ConversationPhase.COOLING_DOWN
        if self.messages_since_intervention < min_messages:
            return ConversationPhase.QUIET
        if self.consecutive_negative >= negative_trigger:
            return ConversationPhase.NEEDS_INTERVENTION
        return ConversationPhase.NORMAL

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            group_id=self.group_id,
            message_count=self.message_count,
            last_message_at=self.last_message_at,
            participant_count=len(self.participants),
            recent_messages=list(self._recent),
            sentiment_average=self.sentiment_average,
            consecutive_negative=self.consecutive_negative,
            last_intervention_at=self.last_intervention_at,
            messages_since_intervention=self.messages_since_intervention,
            topics=list(self.topics),
        )

    def __repr__(self) -> str:
        return (
            f"ConversationState(group={self.group_id}, "
            f"messages={self.message_count}, "
            f"sentiment={self.sentiment_average:.2f}, "
            f"negatives={self.consecutive_negative})"
        )


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(value, high))
