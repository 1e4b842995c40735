"""Live ride feed consumer."""

import logging
from typing import Any, Dict, Optional, Set, Tuple

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from realtime.notifications import FEED_GROUP, route_group

logger = logging.getLogger(__name__)


class RideFeedConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer streaming ride events.

    Clients start on the global feed. ``watch_route`` narrows the connection
    to the routes it names and ``watch_all`` returns to the global feed.

    Client -> server messages:
        {"type": "watch_route", "origin_id": 1, "destination_id": 2}
        {"type": "unwatch_route", "origin_id": 1, "destination_id": 2}
        {"type": "watch_all"}
        {"type": "ping"}

    Server -> client messages carry the event kind as ``type`` plus
    ``ride_id`` and the serialized ``event``.
    """

    async def connect(self):
        self.watching: Set[str] = set()

        await self.accept()
        await self._watch(FEED_GROUP)
        await self.send_json({
            "type": "connection_established",
            "message": "Ride feed connected",
        })

    async def disconnect(self, close_code):
        try:
            for group in list(getattr(self, "watching", ())):
                await self._unwatch(group)
        except Exception:
            logger.exception("Error leaving groups for channel %s", self.channel_name)

    async def receive_json(self, data: Dict[str, Any]):
        msg_type = data.get("type")

        try:
            if msg_type == "watch_route":
                await self._handle_watch_route(data)
            elif msg_type == "unwatch_route":
                await self._handle_unwatch_route(data)
            elif msg_type == "watch_all":
                await self._handle_watch_all()
            elif msg_type == "ping":
                await self.send_json({"type": "pong"})
            elif not msg_type:
                await self._error("Message type is required")
            else:
                await self._error(f"Unknown message type: {msg_type}")
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self._error(f"Error processing {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_watch_route(self, data: Dict[str, Any]):
        route = self._route_from(data)
        if route is None:
            await self._error("watch_route requires origin_id and destination_id")
            return

        # Route watchers would otherwise get every event twice
        if FEED_GROUP in self.watching:
            await self._unwatch(FEED_GROUP)

        await self._watch(route_group(*route))
        await self.send_json({"type": "route_watched", "origin_id": route[0], "destination_id": route[1]})

    async def _handle_unwatch_route(self, data: Dict[str, Any]):
        route = self._route_from(data)
        if route is None:
            await self._error("unwatch_route requires origin_id and destination_id")
            return

        await self._unwatch(route_group(*route))
        await self.send_json({"type": "route_unwatched", "origin_id": route[0], "destination_id": route[1]})

    async def _handle_watch_all(self):
        for group in [g for g in self.watching if g != FEED_GROUP]:
            await self._unwatch(group)
        await self._watch(FEED_GROUP)
        await self.send_json({"type": "feed_watched"})

    @staticmethod
    def _route_from(data: Dict[str, Any]) -> Optional[Tuple[int, int]]:
        try:
            return int(data["origin_id"]), int(data["destination_id"])
        except (KeyError, TypeError, ValueError):
            return None

    # ---------------------- Groups ----------------------

    async def _watch(self, group: str):
        await self.channel_layer.group_add(group, self.channel_name)
        self.watching.add(group)

    async def _unwatch(self, group: str):
        await self.channel_layer.group_discard(group, self.channel_name)
        self.watching.discard(group)

    async def _error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    # ---------------------- Ride Events ----------------------
    # group_send messages from ChannelLayerEventSink land here by type

    async def _forward(self, event):
        await self.send_json({
            "type": event["type"],
            "ride_id": event.get("ride_id"),
            "event": event.get("event", {}),
        })

    async def ride_created(self, event):
        await self._forward(event)

    async def passenger_joined(self, event):
        await self._forward(event)

    async def ride_status_changed(self, event):
        """Explicit transitions and sweep archiving."""
        await self._forward(event)

    async def ride_purged(self, event):
        await self._forward(event)
