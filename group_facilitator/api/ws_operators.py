"""WebSocket endpoint: streams operator events to connected dashboards."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from group_facilitator.notify.operator_channel import OperatorChannel

logger = logging.getLogger(__name__)


def create_operator_router(channel: OperatorChannel) -> APIRouter:
    router = APIRouter()

    @router.websocket("/ws/operators")
    async def stream_operator_events(websocket: WebSocket) -> None:
        """Operators connect here to receive live events; they only listen."""
        await websocket.accept()
        channel.subscribe(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data.strip().lower() == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            channel.unsubscribe(websocket)

    return router
