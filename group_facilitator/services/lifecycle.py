"""Group lifecycle: registering, creating and tearing down monitored groups.

Orchestration only: platform calls (create group, add/remove member) pass
through the DispatchGateway without the rate-limit gate; greeting
messages go through the normal gated send.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from group_facilitator.dispatch.gateway import DispatchGateway
from group_facilitator.domain.delivery import DispatchResult
from group_facilitator.domain.enums import GroupType
from group_facilitator.domain.group import GroupProfile
from group_facilitator.engine.facilitator import Facilitator
from group_facilitator.generation.composer import InterventionComposer
from group_facilitator.scheduler.scheduler import FacilitatorScheduler
from group_facilitator.store.repository import GroupRepository

logger = logging.getLogger(__name__)


class UnknownGroup(KeyError):
    """Raised when a lifecycle action names a group that is not registered."""


class GroupLifecycle:
    def __init__(
        self,
        groups: GroupRepository,
        scheduler: FacilitatorScheduler,
        facilitator: Facilitator,
        composer: InterventionComposer,
        gateway: DispatchGateway,
    ) -> None:
        self._groups = groups
        self._scheduler = scheduler
        self._facilitator = facilitator
        self._composer = composer
        self._gateway = gateway

    async def register(self, group: GroupProfile, introduce: bool = False) -> GroupProfile:
        """Save *group* and arm its timer (re-arming replaces any prior timer)."""
        await self._groups.save_group(group)
        if group.active:
            await self._facilitator.admit_group(group)
            self._scheduler.schedule_group(group.group_id)
        else:
            self._scheduler.cancel_group(group.group_id)
        logger.info("Registered %s group %s (%s)", group.group_type.value, group.group_id, group.name)
        if introduce and group.active:
            composed = await self._composer.compose_introduction(group)
            await self._send(group.destination_id, composed.text)
        return group

    async def teardown(self, group_id: str) -> GroupProfile:
        """Cancel the timer, drop in-memory state, and mark the group inactive."""
        group = await self._require(group_id)
        self._scheduler.cancel_group(group_id)
        await self._facilitator.forget_group(group)
        inactive = group.model_copy(update={"active": False})
        await self._groups.save_group(inactive)
        logger.info("Tore down group %s", group_id)
        return inactive

    async def create_platform_group(
        self,
        name: str,
        group_type: GroupType,
        participants: list[str],
        description: str = "",
        location: str = "",
        interest_tags: list[str] | None = None,
    ) -> GroupProfile:
        """Create the group on the messaging platform, then register it."""
        response = await self._gateway.create_group(name, participants)
        destination_id = str(response.get("id") or response.get("group_id") or "")
        if not destination_id:
            raise ValueError(f"platform did not return a group id: {response!r}")
        group = GroupProfile(
            group_id=destination_id,
            name=name,
            group_type=group_type,
            destination_id=destination_id,
            description=description,
            location=location,
            interest_tags=interest_tags or [],
        )
        return await self.register(group, introduce=True)

    async def add_member(self, group_id: str, member_id: str, welcome: bool = True) -> dict[str, Any]:
        group = await self._require(group_id)
        response = await self._gateway.add_member(group.destination_id, member_id)
        logger.info("Added member %s to group %s", member_id, group_id)
        if welcome:
            composed = await self._composer.compose_welcome(group)
            await self._send(group.destination_id, composed.text)
        return response

    async def remove_member(self, group_id: str, member_id: str) -> dict[str, Any]:
        group = await self._require(group_id)
        response = await self._gateway.remove_member(group.destination_id, member_id)
        logger.info("Removed member %s from group %s", member_id, group_id)
        return response

    async def _require(self, group_id: str) -> GroupProfile:
        group = await self._groups.get_group(group_id)
        if group is None:
            raise UnknownGroup(group_id)
        return group

    async def _send(self, destination_id: str, text: str) -> Optional[DispatchResult]:
        try:
            return await self._gateway.send(destination_id, text)
        except Exception as exc:
            logger.warning("Greeting to %s failed: %s", destination_id, exc)
            return None
