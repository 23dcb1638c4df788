"""In-process milestone event bus.

Services publish transfer and payout milestones after their transaction commits.
Notification delivery (email/SMS) subscribes here and lives outside this service.
"""

import asyncio
import logging
from typing import Dict, Any, AsyncGenerator
from datetime import datetime

logger = logging.getLogger(__name__)


TRANSFER_CREATED = "transfer.created"
TRANSFER_FUNDING_CONFIRMED = "transfer.funding_confirmed"
PAYOUT_INITIATED = "payout.initiated"
PAYOUT_REVIEW_REQUIRED = "payout.review_required"
PAYOUT_COMPLETED = "payout.completed"
PAYOUT_FAILED = "payout.failed"

MILESTONE_EVENTS = frozenset({
    TRANSFER_CREATED,
    TRANSFER_FUNDING_CONFIRMED,
    PAYOUT_INITIATED,
    PAYOUT_REVIEW_REQUIRED,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
})


class EventBus:
    """
    Fan-out of milestone events to asyncio.Queue subscribers.

    Publishing never blocks the request path: a subscriber whose queue is full
    misses the event and the drop is logged.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._subscribers: list[asyncio.Queue] = []
        self._max_queue_size = max_queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish a milestone event to all subscribers.

        Args:
            event_type: One of MILESTONE_EVENTS
            data: JSON-serialisable payload (ids, statuses, amounts)
        """
        if event_type not in MILESTONE_EVENTS:
            raise ValueError(f"Unknown milestone event: {event_type}")

        event = {
            "type": event_type,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }

        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event_type} for a slow subscriber")

    async def subscribe(self) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Subscribe to events and receive them as an async generator.

        Usage:
            async for event in event_bus.subscribe():
                await notifier.deliver(event)
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.append(queue)

        try:
            while True:
                yield await queue.get()
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)


# Global event bus instance
event_bus = EventBus()
