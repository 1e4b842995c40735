"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.ride_feed_consumer import RideFeedConsumer

websocket_urlpatterns = [
    # Live ride events (optionally narrowed to watched routes)
    # URL: ws://localhost:8000/ws/rides/
    re_path(
        r"ws/rides/$",
        RideFeedConsumer.as_asgi(),
        name="rides-ws"
    ),
]
