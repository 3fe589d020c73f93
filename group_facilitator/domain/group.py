"""Group metadata and community events, as read from the persistent store."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from group_facilitator.domain.enums import GroupType


class GroupProfile(BaseModel):
    """What the engine needs to know about a monitored group."""

    group_id: str = Field(..., min_length=1, max_length=256)
    name: str = Field(..., min_length=1, max_length=256)
    group_type: GroupType
    destination_id: str = Field(
        ...,
        min_length=1,
        description="Messaging-platform id used to address the group",
    )
    description: str = ""
    location: str = ""
    interest_tags: list[str] = Field(default_factory=list, max_length=50)
    active: bool = True

    model_config = {"frozen": True}


class CommunityEvent(BaseModel):
    """An external activity that may be suggested to groups."""

    event_id: str
    title: str
    starts_at: datetime
    location: str = ""
    description: str = ""
    link: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    def is_relevant_to(self, group: GroupProfile) -> bool:
        """Activity groups take everything; others match by location, then tags."""
        if group.group_type == GroupType.ACTIVITY:
            return True
        if group.location and self.location:
            return group.location.lower() in self.location.lower()
        if group.interest_tags and self.tags:
            return bool(set(group.interest_tags) & set(self.tags))
        return False
