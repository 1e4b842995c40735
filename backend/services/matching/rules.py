"""Pure matching rules, independent of the ORM."""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from django.utils import timezone

from rides.constants import ALLOWED_TRANSITIONS


def match_bounds(departure_time: datetime, window: timedelta) -> Tuple[datetime, datetime]:
    """Inclusive departure range a waiting ride must fall in to be joinable."""
    return departure_time - window, departure_time + window


def within_service_hours(departure_time: datetime, service_hours: Optional[Tuple[int, int]]) -> bool:
    """Check the departure's local hour against a ``[start, end)`` range."""
    if service_hours is None:
        return True
    start, end = service_hours
    hour = timezone.localtime(departure_time).hour
    if start < end:
        return start <= hour < end
    # Window wraps midnight
    return hour >= start or hour < end


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, ())
