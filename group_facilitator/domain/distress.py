"""Distress domain: risk assessments and the events operators act on.

A DistressAssessment is the classifier's verdict on one message.  A
DistressEvent is the long-lived record that humans triage.  Events are
never silently deleted; they only move between resolution states through
explicit operator or system actions.

Status transitions:
    new      → assigned | resolved | false_positive
    assigned → resolved | false_positive
    resolved, false_positive are terminal
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from group_facilitator.domain.enums import DistressStage, DistressTier, ResolutionStatus
from group_facilitator.foundation.clock import utc_now
from group_facilitator.foundation.identifiers import new_id


def classify_tier(
    score: float,
    informational: float = 0.5,
    elevated: float = 0.7,
    critical: float = 0.9,
) -> DistressTier:
    """Map a [0, 1] risk score onto a tier."""
    if score >= critical:
        return DistressTier.CRITICAL
    if score >= elevated:
        return DistressTier.ELEVATED
    if score >= informational:
        return DistressTier.INFORMATIONAL
    return DistressTier.NONE


class DistressAssessment(BaseModel):
    """Outcome of the two-stage distress filter for one message."""

    score: float = Field(..., ge=0.0, le=1.0)
    tier: DistressTier
    stage: DistressStage
    keyword: Optional[str] = Field(default=None, description="First keyword that matched, if any")
    degraded: bool = Field(
        default=False,
        description="True if the external scorer failed and the fallback score was used",
    )

    model_config = {"frozen": True}

    @property
    def is_crisis(self) -> bool:
        return self.tier in (DistressTier.ELEVATED, DistressTier.CRITICAL)

    @property
    def is_critical(self) -> bool:
        return self.tier == DistressTier.CRITICAL


_TRANSITIONS: dict[ResolutionStatus, frozenset[ResolutionStatus]] = {
    ResolutionStatus.NEW: frozenset({
        ResolutionStatus.ASSIGNED,
        ResolutionStatus.RESOLVED,
        ResolutionStatus.FALSE_POSITIVE,
    }),
    ResolutionStatus.ASSIGNED: frozenset({
        ResolutionStatus.RESOLVED,
        ResolutionStatus.FALSE_POSITIVE,
    }),
    ResolutionStatus.RESOLVED: frozenset(),
    ResolutionStatus.FALSE_POSITIVE: frozenset(),
}


class InvalidStatusTransition(ValueError):
    """Raised when a DistressEvent is moved to a status it cannot reach."""

    def __init__(self, event_id: str, current: ResolutionStatus, target: ResolutionStatus) -> None:
        self.event_id = event_id
        self.current = current
        self.target = target
        super().__init__(
            f"Distress event {event_id} cannot move from {current.value} to {target.value}"
        )


class DistressEvent(BaseModel):
    """An alert record for detected distress in a group."""

    event_id: str = Field(default_factory=new_id)
    group_id: str
    user_id: Optional[str] = None
    sender_id: str
    message_id: str
    message_text: str = ""
    score: float = Field(..., ge=0.0, le=1.0)
    tier: DistressTier
    status: ResolutionStatus = ResolutionStatus.NEW
    occurrences: int = 1
    assigned_to: Optional[str] = None
    resolution_notes: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True}

    @property
    def is_open(self) -> bool:
        return self.status in (ResolutionStatus.NEW, ResolutionStatus.ASSIGNED)

    # ── Transitions ──────────────────────────────────────────────────────

    def assign(self, operator_id: str) -> None:
        self._move(ResolutionStatus.ASSIGNED)
        self.assigned_to = operator_id

    def resolve(self, notes: str = "") -> None:
        self._move(ResolutionStatus.RESOLVED)
        self.resolution_notes = notes

    def mark_false_positive(self, notes: str = "") -> None:
        self._move(ResolutionStatus.FALSE_POSITIVE)
        self.resolution_notes = notes

    def escalate(self, score: float, tier: DistressTier, message_id: str, text: str = "") -> None:
        """Fold a further distress message into this open event.

        Severity only ever rises; the latest message is kept as reference.
        """
        self.occurrences += 1
        self.message_id = message_id
        if text:
            self.message_text = text
        if score > self.score:
            self.score = score
            self.tier = tier
        self.updated_at = utc_now()

    def _move(self, target: ResolutionStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.event_id, self.status, target)
        self.status = target
        self.updated_at = utc_now()
