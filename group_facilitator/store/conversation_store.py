"""In-memory conversation store with per-group async locking.

Design notes:
    - One asyncio.Lock per group id serialises every mutation of that
      group's ConversationState; different groups never contend.  A
      short registry lock guards only slot creation and removal.
    - The store never performs I/O on the record path.  Topic detection
      runs as a fire-and-forget background task every N messages; its
      result is written back under the group lock, and any failure keeps
      the previous topics.
    - Groups are addressed by id only.  Removing a group detaches its
      slot and retires the id: late background writes land on the
      detached slot, and in-flight messages for a retired id create
      nothing until the group is admitted again.
    - Nothing is persisted.  A restarted process re-learns each group
      from its next messages.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Protocol

from group_facilitator.domain.conversation import ConversationSnapshot, ConversationState

logger = logging.getLogger(__name__)


class TopicDetector(Protocol):
    """Extracts discussion topics from a block of recent text."""

    async def detect(self, text: str) -> list[str]:
        ...


class _GroupSlot:
    """A group's state plus the lock that guards it."""

    __slots__ = ("state", "lock")

    def __init__(self, state: ConversationState) -> None:
        self.state = state
        self.lock = asyncio.Lock()


class ConversationStore:
    """Async-safe, in-memory store of ConversationStates keyed by group id.

    Args:
        buffer_size: Recent-message buffer length per group.
        sentiment_weight: Weight of a new sample in the moving average.
        negative_threshold: Sentiment below which a message counts as negative.
        topic_refresh_every: Re-detect topics on every Nth message.
        max_topics: Number of topics retained.
        topic_detector: Optional collaborator for topic refresh.
    """

    def __init__(
        self,
        buffer_size: int = 10,
        sentiment_weight: float = 0.3,
        negative_threshold: float = -0.3,
        topic_refresh_every: int = 5,
        max_topics: int = 5,
        topic_detector: TopicDetector | None = None,
    ) -> None:
        if not 0.0 < sentiment_weight <= 1.0:
            raise ValueError("sentiment_weight must be in (0, 1]")
        if topic_refresh_every < 1:
            raise ValueError("topic_refresh_every must be at least 1")

        self._buffer_size = buffer_size
        self._sentiment_weight = sentiment_weight
        self._negative_threshold = negative_threshold
        self._topic_refresh_every = topic_refresh_every
        self._max_topics = max_topics
        self._topic_detector = topic_detector
        self._registry_lock = asyncio.Lock()
        self._slots: dict[str, _GroupSlot] = {}
        self._retired: set[str] = set()
        self._background: set[asyncio.Task] = set()

    # ── Public API ───────────────────────────────────────────────────────

    async def record_message(
        self,
        group_id: str,
        sender_id: str,
        text: str,
        timestamp: datetime,
        sentiment: float | None = None,
    ) -> ConversationSnapshot | None:
        """Fold one message into the group's state, creating it if absent.

        Returns None for a retired group.
        """
        slot = await self._slot(group_id, create=True)
        if slot is None:
            logger.info("Message for retired group %s not recorded", group_id)
            return None
        async with slot.lock:
            state = slot.state
            state.record(
                sender_id,
                text,
                timestamp,
                sentiment,
                new_weight=self._sentiment_weight,
                negative_threshold=self._negative_threshold,
            )
            refresh = (
                self._topic_detector is not None
                and state.message_count % self._topic_refresh_every == 0
            )
            recent_text = " ".join(m.text for m in state.recent_messages) if refresh else ""
            snapshot = state.snapshot()

        logger.debug(
            "Recorded message for group %s (count=%d, sentiment=%.3f, negatives=%d)",
            group_id,
            snapshot.message_count,
            snapshot.sentiment_average,
            snapshot.consecutive_negative,
        )
        if refresh:
            self._spawn(self._refresh_topics(slot, recent_text))
        return snapshot

    @asynccontextmanager
    async def locked(self, group_id: str, create: bool = False) -> AsyncIterator[ConversationState | None]:
        """Hold the group's lock for a read-decide-write transition.

        Yields None for an unknown group unless *create* is set, and always
        for a retired group or one removed while waiting for the lock.
        Callers must not await external I/O inside the block.
        """
        slot = await self._slot(group_id, create=create)
        if slot is None:
            yield None
            return
        async with slot.lock:
            yield slot.state if self._slots.get(group_id) is slot else None

    def peek(self, group_id: str) -> ConversationSnapshot | None:
        """Non-blocking snapshot read.  No lock: snapshots copy atomically
        between awaits on a single event loop."""
        slot = self._slots.get(group_id)
        return slot.state.snapshot() if slot else None

    async def get(self, group_id: str) -> ConversationSnapshot | None:
        slot = self._slots.get(group_id)
        if slot is None:
            return None
        async with slot.lock:
            return slot.state.snapshot()

    async def remove(self, group_id: str) -> bool:
        """Forget a group's state and retire its id.  Returns True if it existed."""
        async with self._registry_lock:
            removed = self._slots.pop(group_id, None)
            self._retired.add(group_id)
        if removed is not None:
            logger.info("Dropped conversation state for group %s", group_id)
        return removed is not None

    async def admit(self, group_id: str) -> None:
        """Allow state to be created again for a previously removed group."""
        async with self._registry_lock:
            self._retired.discard(group_id)

    def is_retired(self, group_id: str) -> bool:
        return group_id in self._retired

    async def group_ids(self) -> list[str]:
        async with self._registry_lock:
            return list(self._slots)

    async def active_count(self) -> int:
        async with self._registry_lock:
            return len(self._slots)

    async def close(self) -> None:
        """Cancel outstanding background topic refreshes."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def pending_refreshes(self) -> int:
        return len(self._background)

    # ── Internals ────────────────────────────────────────────────────────

    async def _slot(self, group_id: str, create: bool) -> _GroupSlot | None:
        slot = self._slots.get(group_id)
        if slot is not None or not create:
            return slot
        async with self._registry_lock:
            if group_id in self._retired:
                return None
            slot = self._slots.get(group_id)
            if slot is None:
                slot = _GroupSlot(ConversationState(group_id, self._buffer_size))
                self._slots[group_id] = slot
                logger.info("Created conversation state for group %s", group_id)
            return slot

    async def _refresh_topics(self, slot: _GroupSlot, text: str) -> None:
        group_id = slot.state.group_id
        try:
            topics = await self._topic_detector.detect(text)
        except Exception as exc:
            logger.warning("Topic detection failed for group %s, keeping prior topics: %s", group_id, exc)
            return
        if not isinstance(topics, list):
            logger.warning("Topic detector returned %r for group %s, ignoring", type(topics), group_id)
            return
        async with slot.lock:
            slot.state.replace_topics([str(t) for t in topics], self._max_topics)
        logger.debug("Topics for group %s: %s", group_id, slot.state.topics)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
