"""WebSocket consumers for the realtime app."""

from .ride_feed_consumer import RideFeedConsumer

__all__ = ["RideFeedConsumer"]
