"""REST endpoints for distress alerts and the operator audit trail.

Paths:
    GET  /api/alerts                         list events (filter by status/group)
    POST /api/alerts/{id}/assign             new → assigned
    POST /api/alerts/{id}/resolve            new/assigned → resolved
    POST /api/alerts/{id}/false-positive     new/assigned → false_positive
    GET  /api/events                         recent operator events
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from group_facilitator.distress.ledger import DistressLedger, UnknownDistressEvent
from group_facilitator.domain.distress import InvalidStatusTransition
from group_facilitator.domain.enums import ResolutionStatus
from group_facilitator.notify.operator_channel import OperatorChannel


class AssignRequest(BaseModel):
    operator_id: str = Field(..., min_length=1)


class NotesRequest(BaseModel):
    notes: str = ""


def create_alerts_router(ledger: DistressLedger, channel: OperatorChannel) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["alerts"])

    async def _apply(action, event_id: str, *args) -> dict[str, Any]:
        try:
            event = await action(event_id, *args)
        except UnknownDistressEvent:
            raise HTTPException(status_code=404, detail=f"Alert {event_id} not found")
        except InvalidStatusTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        return event.model_dump(mode="json")

    @router.get("/alerts")
    async def list_alerts(
        status: Optional[ResolutionStatus] = None,
        group_id: Optional[str] = None,
    ) -> dict[str, Any]:
        events = await ledger.list(status=status, group_id=group_id)
        return {"alerts": [e.model_dump(mode="json") for e in events], "count": len(events)}

    @router.post("/alerts/{event_id}/assign")
    async def assign(event_id: str, body: AssignRequest) -> dict[str, Any]:
        return await _apply(ledger.assign, event_id, body.operator_id)

    @router.post("/alerts/{event_id}/resolve")
    async def resolve(event_id: str, body: NotesRequest) -> dict[str, Any]:
        return await _apply(ledger.resolve, event_id, body.notes)

    @router.post("/alerts/{event_id}/false-positive")
    async def false_positive(event_id: str, body: NotesRequest) -> dict[str, Any]:
        return await _apply(ledger.mark_false_positive, event_id, body.notes)

    @router.get("/events")
    async def recent_events(limit: int = Query(50, ge=1)) -> dict[str, Any]:
        events = channel.recent(limit)
        return {"events": [e.model_dump(mode="json") for e in events], "count": len(events)}

    return router
