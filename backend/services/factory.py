"""Build the services from Django settings with the default event sinks."""

from services.events import EventBus
from services.matching import RideMatchingEngine
from services.ride_management import RideLifecycleManager, RidePolicy
from services.ride_management.cache import RouteCache


def build_event_bus() -> EventBus:
    from realtime.notifications import ChannelLayerEventSink

    return EventBus([RouteCache(), ChannelLayerEventSink()])


def build_matching_engine() -> RideMatchingEngine:
    return RideMatchingEngine(policy=RidePolicy.from_settings(), events=build_event_bus())


def build_lifecycle_manager() -> RideLifecycleManager:
    return RideLifecycleManager(policy=RidePolicy.from_settings(), events=build_event_bus())
