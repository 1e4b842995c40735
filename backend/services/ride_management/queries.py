"""Read-side queries for the public listing and the admin views."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from django.utils import timezone

from locations.models import Location
from rides.constants import ACTIVE_STATUSES, STATUS_ARCHIVED, STATUS_WAITING
from rides.models import Ride

from .exceptions import InvalidRequestError, RideNotFoundError
from .storage import read_with_retry


def _with_known_locations(queryset):
    """Drop orphaned rides and load both locations in the same query."""
    known = Location.objects.values("pk")
    return (
        queryset.filter(origin_id__in=known, destination_id__in=known)
        .select_related("origin", "destination")
        .prefetch_related("passengers")
    )


def list_available_rides(
    origin_id: Optional[int] = None,
    destination_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Ride]:
    """Waiting rides that have not departed yet, soonest first."""
    now = now or timezone.now()
    rides = Ride.objects.filter(status=STATUS_WAITING, departure_time__gte=now)
    if origin_id:
        rides = rides.filter(origin_id=origin_id)
    if destination_id:
        rides = rides.filter(destination_id=destination_id)
    rides = _with_known_locations(rides).order_by("departure_time")
    return read_with_retry(list, rides, operation="list_available_rides")


def get_ride(ride_id: int) -> Ride:
    """A single ride by id. Orphaned rides are returned too; their location reads as missing."""
    def _load():
        # No select_related: the inner join would hide rides whose location is gone
        return (
            Ride.objects.prefetch_related("passengers")
            .filter(pk=ride_id)
            .first()
        )

    ride = read_with_retry(_load, operation="get_ride")
    if ride is None:
        raise RideNotFoundError(ride_id=ride_id)
    return ride


def dashboard(now: Optional[datetime] = None) -> Dict[str, List[Ride]]:
    """Today's rides (local calendar day) and every upcoming active ride."""
    now = now or timezone.now()
    start_of_day = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_day = start_of_day + timedelta(days=1)

    today = _with_known_locations(
        Ride.objects.filter(departure_time__gte=start_of_day, departure_time__lt=end_of_day)
    ).order_by("departure_time")
    upcoming = _with_known_locations(
        Ride.objects.filter(departure_time__gte=now, status__in=ACTIVE_STATUSES)
    ).order_by("departure_time")

    return {
        "today": read_with_retry(list, today, operation="dashboard_today"),
        "upcoming": read_with_retry(list, upcoming, operation="dashboard_upcoming"),
    }


def archived_rides(limit: int = 100) -> List[Ride]:
    if limit < 1:
        raise InvalidRequestError("Limit must be at least 1.")
    rides = _with_known_locations(
        Ride.objects.filter(status=STATUS_ARCHIVED)
    ).order_by("-departure_time")[:limit]
    return read_with_retry(list, rides, operation="archived_rides")
