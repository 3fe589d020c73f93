"""Decision domain models: what caused a facilitator turn and what was decided."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from group_facilitator.domain.distress import DistressAssessment
from group_facilitator.domain.enums import (
    ConversationPhase,
    InterventionType,
    NudgeKind,
    TriggerKind,
)


class Trigger(BaseModel):
    """An event that asks the decision engine whether to speak.

    Carries identifiers only; the engine resolves conversation state by
    lookup at decision time.
    """

    kind: TriggerKind
    group_id: str
    key: Optional[str] = Field(
        default=None,
        description="Idempotency key (the triggering message id); one fire per key",
    )
    distress: Optional[DistressAssessment] = None
    sender_id: Optional[str] = None
    user_id: Optional[str] = None
    text: str = ""

    model_config = {"frozen": True}


class Decision(BaseModel):
    """Verdict of the intervention decision procedure."""

    fire: bool
    intervention_type: Optional[InterventionType] = None
    reason: str
    phase: ConversationPhase

    model_config = {"frozen": True}

    @classmethod
    def suppress(cls, reason: str, phase: ConversationPhase) -> "Decision":
        return cls(fire=False, reason=reason, phase=phase)


class NudgeDecision(BaseModel):
    """Verdict for a recurring idle-group timer tick."""

    fire: bool
    kind: Optional[NudgeKind] = None
    idle_hours: float
    reason: str

    model_config = {"frozen": True}
