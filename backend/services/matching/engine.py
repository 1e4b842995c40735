"""
Ride matching engine.

Turns a passenger's request into either a new ride or a seat on an existing
compatible ride. Every find-or-create and every seat claim happens inside a
single transaction:

    1. lock both route locations (ordered by id) so concurrent requests for
       the same route serialise and a location cannot vanish mid-request
    2. look for the oldest waiting ride within the matching window
    3. claim a seat with a conditional UPDATE (seats_taken < max_passengers)
    4. insert the passenger row, guarded by the unique (ride, phone) constraint

A failure at any step rolls the whole transaction back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from locations.models import Location
from rides.constants import MAX_SEATS, MIN_SEATS, STATUS_WAITING
from rides.models import Passenger, Ride
from services.events import (
    PASSENGER_JOINED,
    RIDE_CREATED,
    EventSink,
    NullEventSink,
    RideEvent,
    publish_on_commit,
)
from services.ride_management.exceptions import (
    DuplicatePassengerError,
    InvalidRequestError,
    LocationInactiveError,
    OutsideServiceHoursError,
    PastDepartureError,
    RideFullError,
    RideNotFoundError,
    UnknownLocationError,
)
from services.ride_management.policy import RidePolicy
from services.ride_management.storage import read_with_retry, storage_guard

from . import rules

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Outcome of a find-or-create request."""
    ride: Ride
    created: bool
    replayed: bool = False


class RideMatchingEngine:

    def __init__(
        self,
        policy: Optional[RidePolicy] = None,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or RidePolicy()
        self.events = events or NullEventSink()
        self.clock = clock

    # ===================== Public operations =====================

    def request_ride(
        self,
        passenger_name: str,
        passenger_phone: str,
        origin_id: int,
        destination_id: int,
        departure_time: datetime,
        idempotency_key: Optional[str] = None,
    ) -> MatchResult:
        """
        Join the best matching waiting ride, or open a new one.

        Args:
            passenger_name: Display name of the requester
            passenger_phone: Phone number, unique per ride
            origin_id: Pickup location id
            destination_id: Drop-off location id
            departure_time: Desired departure
            idempotency_key: Optional client key making retries safe

        Returns:
            MatchResult with the ride and whether it was created

        Raises:
            InvalidRequestError, UnknownLocationError, LocationInactiveError,
            PastDepartureError, OutsideServiceHoursError,
            DuplicatePassengerError, RideFullError, StorageUnavailableError
        """
        now = self.clock()
        origin_id, destination_id = self._check_route_ids(origin_id, destination_id)
        departure_time = self._aware(departure_time)
        self._check_locations(origin_id, destination_id)
        self._check_departure(departure_time, now)

        with storage_guard("request_ride"):
            replayed = self._replay(idempotency_key)
            if replayed is not None:
                logger.info("Replayed ride request %s -> ride %s", idempotency_key, replayed.pk)
                return MatchResult(ride=replayed, created=False, replayed=True)

            with transaction.atomic():
                self._lock_route(origin_id, destination_id)
                ride = self._find_match(origin_id, destination_id, departure_time, now, for_update=True)
                created = ride is None

                if created:
                    ride = self._insert_ride(
                        origin_id,
                        destination_id,
                        departure_time,
                        now,
                        creator_name=passenger_name,
                        creator_phone=passenger_phone,
                    )
                self._append_passenger(ride, passenger_name, passenger_phone, now, idempotency_key)
                ride.refresh_from_db()

                if created:
                    publish_on_commit(self.events, RideEvent.for_ride(RIDE_CREATED, ride, now))
                else:
                    publish_on_commit(
                        self.events,
                        RideEvent.for_ride(PASSENGER_JOINED, ride, now, seats_taken=ride.seats_taken)
                    )

        logger.info(
            "Ride request %s -> %s at %s %s ride %s",
            origin_id, destination_id, departure_time.isoformat(),
            "created" if created else "joined", ride.pk
        )
        return MatchResult(ride=ride, created=created)

    def add_passenger(
        self,
        ride_id: int,
        name: str,
        phone: str,
        idempotency_key: Optional[str] = None,
    ) -> Ride:
        """Append a passenger to a specific waiting ride."""
        now = self.clock()

        with storage_guard("add_passenger"):
            replayed = self._replay(idempotency_key, ride_id=ride_id)
            if replayed is not None:
                return replayed

            with transaction.atomic():
                try:
                    ride = Ride.objects.select_for_update().get(pk=ride_id)
                except Ride.DoesNotExist:
                    raise RideNotFoundError(ride_id=ride_id)

                if ride.status != STATUS_WAITING or ride.departure_time <= now:
                    raise InvalidRequestError(
                        "This ride is no longer accepting passengers.",
                        ride_id=ride.pk,
                        status=ride.status,
                    )

                self._append_passenger(ride, name, phone, now, idempotency_key)
                ride.refresh_from_db()
                publish_on_commit(
                    self.events,
                    RideEvent.for_ride(PASSENGER_JOINED, ride, now, seats_taken=ride.seats_taken)
                )

        logger.info("Passenger joined ride %s (%s seats taken)", ride.pk, ride.seats_taken)
        return ride

    def create_ride(
        self,
        creator_name: str,
        creator_phone: str,
        origin_id: int,
        destination_id: int,
        departure_time: datetime,
        max_passengers: Optional[int] = None,
        notes: str = "",
    ) -> Ride:
        """Open a ride explicitly, without looking for a match. The creator takes the first seat."""
        now = self.clock()
        origin_id, destination_id = self._check_route_ids(origin_id, destination_id)
        departure_time = self._aware(departure_time)
        if max_passengers is not None and not (MIN_SEATS <= int(max_passengers) <= MAX_SEATS):
            raise InvalidRequestError(
                f"Max passengers must be between {MIN_SEATS} and {MAX_SEATS}."
            )
        self._check_locations(origin_id, destination_id)
        self._check_departure(departure_time, now)

        with storage_guard("create_ride"):
            with transaction.atomic():
                self._lock_route(origin_id, destination_id)
                ride = self._insert_ride(
                    origin_id,
                    destination_id,
                    departure_time,
                    now,
                    creator_name=creator_name,
                    creator_phone=creator_phone,
                    max_passengers=max_passengers,
                    notes=notes,
                )
                if creator_phone:
                    self._append_passenger(ride, creator_name, creator_phone, now)
                    ride.refresh_from_db()
                publish_on_commit(self.events, RideEvent.for_ride(RIDE_CREATED, ride, now))

        logger.info("Created ride %s (%s -> %s)", ride.pk, origin_id, destination_id)
        return ride

    def find_match(self, origin_id: int, destination_id: int, departure_time: datetime) -> Optional[Ride]:
        """Read-only lookup of the ride a request would join."""
        return read_with_retry(
            self._find_match,
            origin_id,
            destination_id,
            self._aware(departure_time),
            self.clock(),
            operation="find_match",
        )

    # ===================== Validation =====================

    def _check_route_ids(self, origin_id, destination_id) -> Tuple[int, int]:
        try:
            origin_id, destination_id = int(origin_id), int(destination_id)
        except (TypeError, ValueError):
            raise InvalidRequestError("Origin and destination must be location ids.")
        if origin_id == destination_id:
            raise InvalidRequestError("Origin and destination must be different.")
        return origin_id, destination_id

    def _check_locations(self, origin_id: int, destination_id: int) -> None:
        found = read_with_retry(
            lambda: {
                loc.pk: loc
                for loc in Location.objects.filter(pk__in=[origin_id, destination_id])
            },
            operation="check_locations",
        )
        self._require_active(found, origin_id, destination_id)

    def _check_departure(self, departure_time: datetime, now: datetime) -> None:
        if departure_time <= now:
            raise PastDepartureError()
        if not rules.within_service_hours(departure_time, self.policy.service_hours):
            start, end = self.policy.service_hours
            raise OutsideServiceHoursError(
                f"Rides can only depart between {start:02d}:00 and {end:02d}:00.",
                service_hours=[start, end],
            )

    @staticmethod
    def _require_active(found, origin_id: int, destination_id: int) -> None:
        for location_id in (origin_id, destination_id):
            location = found.get(location_id)
            if location is None:
                raise UnknownLocationError(location_id=location_id)
            if not location.is_active:
                raise LocationInactiveError(
                    f"{location.name} is not currently available.",
                    location_id=location_id,
                )

    @staticmethod
    def _aware(value: datetime) -> datetime:
        if not isinstance(value, datetime):
            raise InvalidRequestError("Departure time must be a datetime.")
        if timezone.is_naive(value):
            return timezone.make_aware(value)
        return value

    # ===================== Storage steps =====================

    def _lock_route(self, origin_id: int, destination_id: int) -> None:
        """Row-lock both locations in id order and re-check they are still usable."""
        locked = {
            loc.pk: loc
            for loc in Location.objects.select_for_update()
            .filter(pk__in=[origin_id, destination_id])
            .order_by("pk")
        }
        self._require_active(locked, origin_id, destination_id)

    def _find_match(
        self,
        origin_id: int,
        destination_id: int,
        departure_time: datetime,
        now: datetime,
        for_update: bool = False,
    ) -> Optional[Ride]:
        earliest, latest = rules.match_bounds(departure_time, self.policy.match_window)
        candidates = (
            Ride.objects.filter(
                origin_id=origin_id,
                destination_id=destination_id,
                status=STATUS_WAITING,
                departure_time__gte=earliest,
                departure_time__lte=latest,
                departure_time__gt=now,
            )
            # Oldest ride wins so passengers are not spread over near-duplicates
            .order_by("created_at", "pk")
        )
        if for_update:
            candidates = candidates.select_for_update()
        return candidates.first()

    def _insert_ride(
        self,
        origin_id: int,
        destination_id: int,
        departure_time: datetime,
        now: datetime,
        creator_name: str = "",
        creator_phone: str = "",
        max_passengers: Optional[int] = None,
        notes: str = "",
    ) -> Ride:
        return Ride.objects.create(
            origin_id=origin_id,
            destination_id=destination_id,
            departure_time=departure_time,
            creator_name=creator_name,
            creator_phone=creator_phone,
            max_passengers=max_passengers if max_passengers is not None else self.policy.default_max_passengers,
            seats_taken=0,
            status=STATUS_WAITING,
            notes=notes or "",
            created_at=now,
            updated_at=now,
        )

    def _append_passenger(
        self,
        ride: Ride,
        name: str,
        phone: str,
        now: datetime,
        idempotency_key: Optional[str] = None,
    ) -> Passenger:
        if ride.passengers.filter(phone=phone).exists():
            raise DuplicatePassengerError(ride_id=ride.pk)

        # Compare-and-swap on the seat count; zero rows means the ride is full
        claimed = Ride.objects.filter(pk=ride.pk, status=STATUS_WAITING).filter(
            Q(max_passengers__isnull=True) | Q(seats_taken__lt=F("max_passengers"))
        ).update(seats_taken=F("seats_taken") + 1, updated_at=now)
        if not claimed:
            raise RideFullError(ride_id=ride.pk, max_passengers=ride.max_passengers)

        # joined_at never goes backwards, even if clocks disagree between workers
        last_joined = (
            ride.passengers.order_by("-joined_at").values_list("joined_at", flat=True).first()
        )
        joined_at = max(now, last_joined) if last_joined else now

        try:
            with transaction.atomic():
                return Passenger.objects.create(
                    ride=ride,
                    name=name,
                    phone=phone,
                    joined_at=joined_at,
                    idempotency_key=idempotency_key or None,
                )
        except IntegrityError:
            raise DuplicatePassengerError(ride_id=ride.pk)

    def _replay(self, idempotency_key: Optional[str], ride_id: Optional[int] = None) -> Optional[Ride]:
        if not idempotency_key:
            return None
        passenger = (
            Passenger.objects.select_related("ride")
            .filter(idempotency_key=idempotency_key)
            .first()
        )
        if passenger is None:
            return None
        if ride_id is not None and passenger.ride_id != int(ride_id):
            raise InvalidRequestError(
                "This idempotency key was already used for a different ride.",
                ride_id=ride_id,
            )
        return passenger.ride
