"""Inbound group message: the contract between the messaging feed and the engine.

Validated at the boundary so downstream code never has to re-check field
constraints.  Immutable after creation.
"""

from __future__ import annotations

from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator

from group_facilitator.foundation.clock import ensure_aware, utc_now
from group_facilitator.foundation.identifiers import new_id


class InboundMessage(BaseModel):
    """A message observed in a monitored group."""

    message_id: str = Field(default_factory=new_id, min_length=1, max_length=256)
    group_id: str = Field(..., min_length=1, max_length=256)
    sender_id: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Platform identifier of the sender (e.g. WhatsApp number)",
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Registered user id, when the sender is known to the case system",
    )
    text: str = Field(..., max_length=8192)
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class RecentMessage(NamedTuple):
    """One entry of the bounded per-group message buffer."""

    sender: str
    text: str
    timestamp: datetime
