"""
broadcaster.py — In-process fan-out of incident change events.

Every WebSocket subscriber gets its own asyncio.Queue. publish() pushes
the same event into each queue without awaiting, so one slow client
cannot stall a submission. A full queue drops that subscriber's event
and logs it; the client is expected to refresh on reconnect.

Event shape:
  { "type": "incident.inserted" | "incident.updated", "incident": {...} }

Delivery is best-effort and at-least-once from the consumer's view:
an insert can arrive both as the POST response and as an event, so
consumers de-duplicate by incident id.
"""

import asyncio
import logging

from campus_safety.models.incident import Incident

logger = logging.getLogger(__name__)

INSERTED = "incident.inserted"
UPDATED = "incident.updated"


class IncidentBroadcaster:
    def __init__(self, max_queue: int = 100) -> None:
        self._subscribers: list[asyncio.Queue] = []
        self._max_queue = max_queue

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event_type: str, incident: Incident) -> None:
        event = {"type": event_type, "incident": incident.model_dump(mode="json")}
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping %s for a slow subscriber (incident %s)", event_type, incident.id)

    def inserted(self, incident: Incident) -> None:
        self.publish(INSERTED, incident)

    def updated(self, incident: Incident) -> None:
        self.publish(UPDATED, incident)


# Module-level singleton shared by the incident routes and the stream endpoint
broadcaster = IncidentBroadcaster()
