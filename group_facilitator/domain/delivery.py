"""Outbound delivery results.

A send through the dispatch gateway ends in exactly one of two values:
the messaging client's DeliveryResult (returned unchanged) or a
RateLimited verdict telling the caller when to retry.  Rate limiting is
never an exception.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class DeliveryResult(BaseModel):
    """What the external messaging client reports for an accepted send."""

    destination_id: str
    message_id: str = ""
    accepted: bool = True
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class RateLimited(BaseModel):
    """The gate refused the send; nothing reached the external client."""

    destination_id: str
    scope: Literal["destination", "system"]
    retry_after_seconds: float = Field(..., ge=0.0)

    model_config = {"frozen": True}


DispatchResult = Union[DeliveryResult, RateLimited]
