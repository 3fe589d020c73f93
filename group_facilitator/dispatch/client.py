"""Messaging-platform client boundary."""

from __future__ import annotations

from typing import Any, Protocol

from group_facilitator.domain.delivery import DeliveryResult


class MessagingClient(Protocol):
    """The outbound primitives the engine needs from the platform."""

    async def send_to_destination(self, destination_id: str, text: str) -> DeliveryResult: ...

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]: ...

    async def add_member(self, destination_id: str, member_id: str) -> dict[str, Any]: ...

    async def remove_member(self, destination_id: str, member_id: str) -> dict[str, Any]: ...
