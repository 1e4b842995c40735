"""
Cache for the public "waiting rides" listing.

Entries are keyed by the (origin, destination) filter combination. The cache
is also an event sink so any ride mutation drops the entries for its route.
"""

import logging
from typing import Callable, Optional

from django.core.cache import cache as default_cache

from services.events import EventSink, RideEvent

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "rides:opportunistic-sweep"


class RouteCache(EventSink):

    def __init__(self, cache=None, timeout: int = 60, prefix: str = "rides:waiting"):
        self.cache = cache or default_cache
        self.timeout = timeout
        self.prefix = prefix

    def key(self, origin_id: Optional[int] = None, destination_id: Optional[int] = None) -> str:
        return f"{self.prefix}:{origin_id or '*'}:{destination_id or '*'}"

    def get_or_set(self, origin_id, destination_id, loader: Callable):
        key = self.key(origin_id, destination_id)
        value = self.cache.get(key)
        if value is None:
            value = loader()
            self.cache.set(key, value, self.timeout)
        return value

    def invalidate(self, origin_id: Optional[int], destination_id: Optional[int]) -> None:
        # Every filter combination a listing of this route could be cached under
        keys = {
            self.key(origin_id, destination_id),
            self.key(origin_id, None),
            self.key(None, destination_id),
            self.key(None, None),
        }
        self.cache.delete_many(list(keys))
        logger.debug("Invalidated ride listing cache for route %s -> %s", origin_id, destination_id)

    def publish(self, event: RideEvent) -> None:
        self.invalidate(event.origin_id, event.destination_id)


def acquire_sweep_slot(seconds: int, cache=None) -> bool:
    """True at most once per ``seconds`` window across processes sharing the cache."""
    if seconds <= 0:
        return True
    return (cache or default_cache).add(SWEEP_LOCK_KEY, True, seconds)
