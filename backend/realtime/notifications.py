"""
Push ride events to WebSocket clients through the channel layer.

Every event goes to the ``rides_feed`` group and to the group of its route,
``route_<origin_id>_<destination_id>``. The message ``type`` is the event
kind, which Channels dispatches to the consumer handler of the same name.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from services.events import EventSink, RideEvent

logger = logging.getLogger(__name__)

FEED_GROUP = "rides_feed"


def route_group(origin_id, destination_id) -> str:
    return f"route_{origin_id}_{destination_id}"


def build_message(event: RideEvent) -> Dict[str, Any]:
    return {
        "type": event.kind,
        "ride_id": event.ride_id,
        "event": event.to_dict(),
    }


class ChannelLayerEventSink(EventSink):

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def publish(self, event: RideEvent) -> None:
        channel_layer = self.channel_layer
        if channel_layer is None:
            logger.warning("No channel layer available for %s", event.kind)
            return

        message = build_message(event)
        logger.debug("WS -> %s: %s", FEED_GROUP, message)
        async_to_sync(channel_layer.group_send)(FEED_GROUP, message)

        if event.origin_id and event.destination_id:
            async_to_sync(channel_layer.group_send)(
                route_group(event.origin_id, event.destination_id), message
            )
