"""REST endpoints for group registration, lifecycle and inspection."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from group_facilitator.domain.enums import GroupType
from group_facilitator.domain.group import GroupProfile
from group_facilitator.services.lifecycle import GroupLifecycle, UnknownGroup
from group_facilitator.store.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class GroupUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    group_type: GroupType
    destination_id: Optional[str] = Field(
        default=None, description="Platform id; defaults to the group id",
    )
    description: str = ""
    location: str = ""
    interest_tags: list[str] = Field(default_factory=list)
    active: bool = True
    introduce: bool = False


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    group_type: GroupType
    participants: list[str] = Field(default_factory=list)
    description: str = ""
    location: str = ""
    interest_tags: list[str] = Field(default_factory=list)


def create_groups_router(lifecycle: GroupLifecycle, store: ConversationStore) -> APIRouter:
    router = APIRouter(prefix="/api/groups", tags=["groups"])

    @router.put("/{group_id}")
    async def upsert_group(group_id: str, body: GroupUpsert) -> dict[str, Any]:
        """Register or update a monitored group and (re)arm its timer."""
        group = GroupProfile(
            group_id=group_id,
            name=body.name,
            group_type=body.group_type,
            destination_id=body.destination_id or group_id,
            description=body.description,
            location=body.location,
            interest_tags=body.interest_tags,
            active=body.active,
        )
        saved = await lifecycle.register(group, introduce=body.introduce)
        return saved.model_dump(mode="json")

    @router.delete("/{group_id}")
    async def teardown_group(group_id: str) -> dict[str, Any]:
        try:
            group = await lifecycle.teardown(group_id)
        except UnknownGroup:
            raise HTTPException(status_code=404, detail=f"Group {group_id} not found")
        return group.model_dump(mode="json")

    @router.get("/{group_id}/conversation")
    async def conversation(group_id: str) -> dict[str, Any]:
        snapshot = await store.get(group_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"No conversation state for group {group_id}")
        return snapshot.model_dump(mode="json")

    @router.post("", status_code=201)
    async def create_group(body: GroupCreate) -> dict[str, Any]:
        """Create a group on the messaging platform and start monitoring it."""
        try:
            group = await lifecycle.create_platform_group(
                name=body.name,
                group_type=body.group_type,
                participants=body.participants,
                description=body.description,
                location=body.location,
                interest_tags=body.interest_tags,
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Platform group creation failed: %s", exc)
            raise HTTPException(status_code=502, detail=f"Messaging platform error: {exc}")
        return group.model_dump(mode="json")

    @router.post("/{group_id}/members/{member_id}")
    async def add_member(group_id: str, member_id: str, welcome: bool = True) -> dict[str, Any]:
        try:
            response = await lifecycle.add_member(group_id, member_id, welcome=welcome)
        except UnknownGroup:
            raise HTTPException(status_code=404, detail=f"Group {group_id} not found")
        except httpx.HTTPError as exc:
            raise HTTPException(status_code=502, detail=f"Messaging platform error: {exc}")
        return {"status": "added", "group_id": group_id, "member_id": member_id, "platform": response}

    @router.delete("/{group_id}/members/{member_id}")
    async def remove_member(group_id: str, member_id: str) -> dict[str, Any]:
        try:
            response = await lifecycle.remove_member(group_id, member_id)
        except UnknownGroup:
            raise HTTPException(status_code=404, detail=f"Group {group_id} not found")
        except httpx.HTTPError as exc:
            raise HTTPException(status_code=502, detail=f"Messaging platform error: {exc}")
        return {"status": "removed", "group_id": group_id, "member_id": member_id, "platform": response}

    return router
