"""
Ride events emitted after successful mutations.

The services only build and publish these values; delivery (WebSocket push,
cache invalidation, ...) is up to whichever sinks are plugged in.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction

logger = logging.getLogger(__name__)

RIDE_CREATED = "ride_created"
PASSENGER_JOINED = "passenger_joined"
RIDE_STATUS_CHANGED = "ride_status_changed"
RIDE_PURGED = "ride_purged"


@dataclass(frozen=True)
class RideEvent:
    kind: str
    ride_id: int
    origin_id: Optional[int]
    destination_id: Optional[int]
    status: str
    occurred_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_ride(cls, kind: str, ride, occurred_at: datetime, **payload) -> "RideEvent":
        return cls(
            kind=kind,
            ride_id=ride.pk,
            origin_id=ride.origin_id,
            destination_id=ride.destination_id,
            status=ride.status,
            occurred_at=occurred_at,
            payload=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "ride_id": self.ride_id,
            "origin_id": self.origin_id,
            "destination_id": self.destination_id,
            "status": self.status,
            "occurred_at": self.occurred_at.isoformat(),
            **self.payload,
        }


class EventSink:
    """Anything that wants to hear about ride mutations."""

    def publish(self, event: RideEvent) -> None:
        raise NotImplementedError


class NullEventSink(EventSink):
    def publish(self, event: RideEvent) -> None:
        pass


class RecordingEventSink(EventSink):
    """Keeps published events in memory."""

    def __init__(self):
        self.events: List[RideEvent] = []

    def publish(self, event: RideEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]


class EventBus(EventSink):
    """Fan an event out to several sinks. A failing sink never breaks the others."""

    def __init__(self, sinks: Iterable[EventSink] = ()):
        self.sinks = list(sinks)

    def publish(self, event: RideEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception(
                    "Event sink %s failed for %s on ride %s",
                    type(sink).__name__, event.kind, event.ride_id
                )


def publish_on_commit(sink: EventSink, event: RideEvent) -> None:
    """Publish once the surrounding transaction commits (immediately outside one)."""
    transaction.on_commit(lambda: sink.publish(event))
