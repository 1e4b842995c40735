"""
Realtime app for WebSocket ride notifications.

This app provides:
- A WebSocket consumer streaming ride events (global feed or per route)
- A channel-layer event sink the ride services publish through

Key Components:
    - consumers/: WebSocket consumers
    - notifications.py: ChannelLayerEventSink and group naming
    - routing.py: WebSocket URL patterns

Usage:
    from realtime.consumers import RideFeedConsumer
    from realtime.notifications import ChannelLayerEventSink
"""
