from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from api.deps import get_event_bus, get_owner_id
from services.event_bus import EventBus


router = APIRouter(prefix="/events", tags=["stream"])


@router.get("/stream")
async def owner_stream(
    owner_id: str = Depends(get_owner_id),
    events: EventBus = Depends(get_event_bus),
) -> EventSourceResponse:
    queue = events.subscribe(owner_id)

    async def event_generator():
        try:
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=15)
                    yield {
                        "event": message["event"],
                        "data": json.dumps(message["data"], ensure_ascii=False),
                    }
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": "{}"}
        finally:
            events.unsubscribe(owner_id, queue)

    return EventSourceResponse(event_generator())
