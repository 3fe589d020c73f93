"""Persistent-store boundary.

The engine only needs a narrow slice of the case-management database:
group metadata, one alert record per DistressEvent, a "last facilitator
interaction" timestamp per group, and a feed of community events.  Each
slice is a Protocol; the in-memory implementations back the default
wiring and the tests.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Protocol

from group_facilitator.domain.distress import DistressEvent
from group_facilitator.domain.group import CommunityEvent, GroupProfile
from group_facilitator.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class GroupRepository(Protocol):
    async def get_group(self, group_id: str) -> GroupProfile | None: ...

    async def list_active(self) -> list[GroupProfile]: ...

    async def save_group(self, group: GroupProfile) -> None: ...

    async def get_last_interaction(self, group_id: str) -> datetime | None: ...

    async def set_last_interaction(self, group_id: str, at: datetime) -> None: ...


class AlertRepository(Protocol):
    async def save_alert(self, event: DistressEvent) -> None: ...

    async def get_alert(self, event_id: str) -> DistressEvent | None: ...


class EventFeed(Protocol):
    async def fetch_new_events(self) -> list[CommunityEvent]:
        """Events discovered since the previous call."""
        ...

    async def upcoming(self, group: GroupProfile, limit: int = 3) -> list[CommunityEvent]:
        """Soonest future events relevant to *group*."""
        ...


class InMemoryGroupRepository:
    """Dict-backed GroupRepository."""

    def __init__(self, groups: list[GroupProfile] | None = None) -> None:
        self._lock = asyncio.Lock()
        self._groups: dict[str, GroupProfile] = {g.group_id: g for g in groups or []}
        self._last_interaction: dict[str, datetime] = {}

    async def get_group(self, group_id: str) -> GroupProfile | None:
        async with self._lock:
            return self._groups.get(group_id)

    async def list_active(self) -> list[GroupProfile]:
        async with self._lock:
            return [g for g in self._groups.values() if g.active]

    async def save_group(self, group: GroupProfile) -> None:
        async with self._lock:
            self._groups[group.group_id] = group

    async def get_last_interaction(self, group_id: str) -> datetime | None:
        async with self._lock:
            return self._last_interaction.get(group_id)

    async def set_last_interaction(self, group_id: str, at: datetime) -> None:
        async with self._lock:
            self._last_interaction[group_id] = at


class InMemoryAlertRepository:
    """Dict-backed AlertRepository storing copies, as a database would."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._alerts: dict[str, DistressEvent] = {}

    async def save_alert(self, event: DistressEvent) -> None:
        async with self._lock:
            self._alerts[event.event_id] = event.model_copy(deep=True)

    async def get_alert(self, event_id: str) -> DistressEvent | None:
        async with self._lock:
            stored = self._alerts.get(event_id)
            return stored.model_copy(deep=True) if stored else None

    async def count(self) -> int:
        async with self._lock:
            return len(self._alerts)


class InMemoryEventFeed:
    """EventFeed over a list; each added event is "new" exactly once."""

    def __init__(self, events: list[CommunityEvent] | None = None) -> None:
        self._lock = asyncio.Lock()
        self._events: list[CommunityEvent] = list(events or [])
        self._unseen: list[CommunityEvent] = list(self._events)

    async def add(self, event: CommunityEvent) -> None:
        async with self._lock:
            self._events.append(event)
            self._unseen.append(event)

    async def fetch_new_events(self) -> list[CommunityEvent]:
        async with self._lock:
            fresh, self._unseen = self._unseen, []
            return fresh

    async def upcoming(self, group: GroupProfile, limit: int = 3) -> list[CommunityEvent]:
        now = utc_now()
        async with self._lock:
            events = sorted(
                (e for e in self._events if e.starts_at >= now and e.is_relevant_to(group)),
                key=lambda e: e.starts_at,
            )
        return events[:limit]
