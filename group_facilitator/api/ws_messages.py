"""WebSocket endpoint for inbound group messages.

Path: /ws/messages

Accepts JSON matching the InboundMessage schema, validates it at the
boundary, runs it through the Facilitator, and acknowledges with the
decision outcome.  Processing failures are contained by the Facilitator;
a malformed payload gets an error reply and the connection stays open.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from group_facilitator.domain.messages import InboundMessage
from group_facilitator.engine.facilitator import Facilitator

logger = logging.getLogger(__name__)


def create_message_router(facilitator: Facilitator) -> APIRouter:
    """Factory that wires the message feed to a concrete Facilitator."""

    router = APIRouter()

    @router.websocket("/ws/messages")
    async def ingest_messages(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Message feed connected")

        try:
            while True:
                raw = await websocket.receive_json()

                # ── Validate at the boundary ─────────────────────────────
                try:
                    message = InboundMessage.model_validate(raw)
                except ValidationError as exc:
                    await websocket.send_json({
                        "status": "error",
                        "detail": exc.errors(include_url=False, include_context=False),
                    })
                    continue

                # ── Process ──────────────────────────────────────────────
                outcome = await facilitator.handle_message(message)

                # ── Acknowledge ──────────────────────────────────────────
                await websocket.send_json({
                    "status": "accepted" if outcome is not None else "ignored",
                    "message_id": message.message_id,
                    "group_id": message.group_id,
                    "outcome": outcome.summary() if outcome is not None else None,
                })

        except WebSocketDisconnect:
            logger.info("Message feed disconnected")

    return router
