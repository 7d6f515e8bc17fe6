from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any


logger = logging.getLogger(__name__)


class EventBus:
    """Per-owner fan-out of entity status changes to SSE subscribers."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self.channels: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, owner_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self.channels[owner_id].add(queue)
        return queue

    def unsubscribe(self, owner_id: str, queue: asyncio.Queue) -> None:
        self.channels[owner_id].discard(queue)
        if not self.channels[owner_id]:
            self.channels.pop(owner_id, None)

    async def publish(self, owner_id: str, event_type: str, data: dict[str, Any]) -> None:
        if owner_id not in self.channels:
            return
        message = {"event": event_type, "data": data}
        for queue in list(self.channels[owner_id]):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Dropping %s event for slow subscriber of %s", event_type, owner_id)
