"""
Location registry: create, toggle, delete and seed locations.

Deleting a location is guarded: rides that are still waiting or in progress
block it, and historical rides that reference it are purged with it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from locations.models import Location
from rides.constants import ACTIVE_STATUSES
from rides.models import Ride
from services.events import EventSink, NullEventSink
from services.ride_management.exceptions import (
    DuplicateNameError,
    InvalidRequestError,
    LocationInUseError,
    LocationNotFoundError,
)
from services.ride_management.ride_lifecycle import purge_rides
from services.ride_management.storage import read_with_retry, storage_guard

logger = logging.getLogger(__name__)


@dataclass
class LocationDeletion:
    """Result of a location delete."""
    location_id: int
    name: str
    purged_rides: int = 0


def _coordinate(value, limit: int, label: str) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequestError(f"Invalid {label}.")
    if not (-limit <= number <= limit):
        raise InvalidRequestError(f"Invalid {label}.")
    return number.quantize(Decimal("0.000001"))


def create_location(
    name: str,
    address: str = "",
    latitude=None,
    longitude=None,
    is_active: bool = True,
) -> Location:
    """
    Create a new location.

    Raises:
        InvalidRequestError: blank name or out-of-range coordinates
        DuplicateNameError: the name is already taken
    """
    name = (name or "").strip()
    if not (2 <= len(name) <= 100):
        raise InvalidRequestError("Location name must be between 2 and 100 characters.")
    lat = _coordinate(latitude, 90, "latitude")
    lng = _coordinate(longitude, 180, "longitude")

    with storage_guard("create_location"):
        if Location.objects.filter(name=name).exists():
            raise DuplicateNameError(name=name)
        try:
            with transaction.atomic():
                location = Location.objects.create(
                    name=name,
                    address=(address or "").strip(),
                    latitude=lat,
                    longitude=lng,
                    is_active=is_active,
                )
        except IntegrityError:
            raise DuplicateNameError(name=name)

    logger.info("Created location %s (%s)", location.pk, location.name)
    return location


def get_location(location_id: int) -> Location:
    location = read_with_retry(
        lambda: Location.objects.filter(pk=location_id).first(),
        operation="get_location",
    )
    if location is None:
        raise LocationNotFoundError(location_id=location_id)
    return location


def list_locations(active_only: bool = False) -> List[Location]:
    locations = Location.objects.all()
    if active_only:
        locations = locations.filter(is_active=True)
    return read_with_retry(list, locations.order_by("name"), operation="list_locations")


def toggle_active(location_id: int) -> Location:
    """
    Flip a location's active flag.

    Rides already referencing it stay valid; an inactive location only stops
    new rides from being matched or created.
    """
    with storage_guard("toggle_location"):
        with transaction.atomic():
            try:
                location = Location.objects.select_for_update().get(pk=location_id)
            except Location.DoesNotExist:
                raise LocationNotFoundError(location_id=location_id)
            location.is_active = not location.is_active
            location.save(update_fields=["is_active", "updated_at"])

    logger.info("Location %s is now %s", location.pk, "active" if location.is_active else "inactive")
    return location


def delete_location(location_id: int, events: Optional[EventSink] = None) -> LocationDeletion:
    """
    Delete a location and the historical rides that reference it.

    Raises:
        LocationNotFoundError: no such location
        LocationInUseError: waiting or in-progress rides still use it
    """
    events = events or NullEventSink()
    now = timezone.now()

    with storage_guard("delete_location"):
        with transaction.atomic():
            try:
                location = Location.objects.select_for_update().get(pk=location_id)
            except Location.DoesNotExist:
                raise LocationNotFoundError(location_id=location_id)

            referencing = Ride.objects.filter(Q(origin_id=location.pk) | Q(destination_id=location.pk))
            blocking = list(
                referencing.filter(status__in=ACTIVE_STATUSES).values_list("pk", flat=True)
            )
            if blocking:
                raise LocationInUseError(
                    f"{location.name} still has {len(blocking)} active ride(s).",
                    ride_ids=blocking,
                )

            historical = list(referencing.values_list("pk", "origin_id", "destination_id", "status"))
            purged = purge_rides(historical, events, now, reason="location_deleted")
            result = LocationDeletion(location_id=location.pk, name=location.name, purged_rides=purged)
            location.delete()

    logger.info("Deleted location %s (%s), purged %d rides", result.location_id, result.name, purged)
    return result


def seed_locations(
    entries: Iterable[Mapping],
    replace: bool = False,
    events: Optional[EventSink] = None,
) -> Tuple[int, int]:
    """
    Create any missing locations from ``entries``.

    With ``replace`` every existing location that can be deleted is removed
    first; ones still used by active rides are kept.

    Returns:
        (created, skipped) counts
    """
    if replace:
        for location in list_locations():
            try:
                delete_location(location.pk, events=events)
            except LocationInUseError:
                logger.warning("Keeping location %s: it has active rides", location.name)

    created = skipped = 0
    for entry in entries:
        try:
            create_location(
                name=entry["name"],
                address=entry.get("address", ""),
                latitude=entry.get("lat"),
                longitude=entry.get("lng"),
                is_active=entry.get("is_active", True),
            )
            created += 1
        except DuplicateNameError:
            skipped += 1
    return created, skipped
