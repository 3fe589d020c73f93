"""Structured events emitted to the operator notification channel."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from group_facilitator.domain.enums import DistressTier, InterventionType, OperatorEventKind
from group_facilitator.foundation.clock import utc_now
from group_facilitator.foundation.identifiers import new_id


class OperatorEvent(BaseModel):
    """An audit/alerting record; consumers must tolerate unknown extra keys."""

    event_id: str = Field(default_factory=new_id)
    kind: OperatorEventKind
    group_id: str
    intervention_type: Optional[InterventionType] = None
    tier: Optional[DistressTier] = None
    user_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @classmethod
    def intervention_sent(cls, group_id: str, intervention_type: InterventionType, **details: Any) -> "OperatorEvent":
        return cls(
            kind=OperatorEventKind.INTERVENTION_SENT,
            group_id=group_id,
            intervention_type=intervention_type,
            details=details,
        )

    @classmethod
    def distress_detected(
        cls,
        group_id: str,
        tier: DistressTier,
        user_id: Optional[str],
        **details: Any,
    ) -> "OperatorEvent":
        return cls(
            kind=OperatorEventKind.DISTRESS_DETECTED,
            group_id=group_id,
            tier=tier,
            user_id=user_id,
            details=details,
        )
