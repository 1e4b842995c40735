"""
Ride lifecycle operations.

Time-driven transitions (archive departed rides, purge stale archives),
orphan cleanup when locations disappear, and explicit status changes.

Sweeps are best-effort: a storage failure is logged and reported as a zero
count so that a read path which triggered a sweep keeps working.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from locations.models import Location
from rides.constants import (
    ACTIVE_STATUSES,
    HISTORICAL_STATUSES,
    STATUS_ARCHIVED,
    STATUS_CHOICES,
)
from rides.models import Ride
from services.events import (
    RIDE_PURGED,
    RIDE_STATUS_CHANGED,
    EventSink,
    NullEventSink,
    RideEvent,
    publish_on_commit,
)
from services.matching import rules

from .cache import acquire_sweep_slot
from .exceptions import InvalidRequestError, RideNotFoundError
from .policy import RidePolicy
from .storage import STORAGE_ERRORS, storage_guard

logger = logging.getLogger(__name__)


@dataclass
class OrphanSweep:
    """Result of an orphan sweep."""
    purged: int = 0
    blocking: List[int] = field(default_factory=list)


def orphaned_rides():
    """Rides whose origin or destination no longer resolves to a location."""
    known = Location.objects.values("pk")
    return Ride.objects.filter(~Q(origin_id__in=known) | ~Q(destination_id__in=known))


def purge_rides(rows, events: EventSink, occurred_at: datetime, reason: str) -> int:
    """
    Hard-delete rides (and their passengers) given (pk, origin_id, destination_id, status) rows.

    Must run inside a transaction; events go out after commit.
    """
    if not rows:
        return 0
    _, per_model = Ride.objects.filter(pk__in=[row[0] for row in rows]).delete()
    for pk, origin_id, destination_id, status in rows:
        publish_on_commit(events, RideEvent(
            kind=RIDE_PURGED,
            ride_id=pk,
            origin_id=origin_id,
            destination_id=destination_id,
            status=status,
            occurred_at=occurred_at,
            payload={"reason": reason},
        ))
    return per_model.get(Ride._meta.label, 0)


class RideLifecycleManager:

    def __init__(
        self,
        policy: Optional[RidePolicy] = None,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = timezone.now,
        cache=None,
    ):
        self.policy = policy or RidePolicy()
        self.events = events or NullEventSink()
        self.clock = clock
        self.cache = cache

    # ===================== Sweeps =====================

    def sweep_archive(self) -> int:
        """Archive every non-archived ride whose departure time has passed."""
        now = self.clock()
        try:
            with transaction.atomic():
                due = list(
                    Ride.objects.filter(departure_time__lt=now)
                    .exclude(status=STATUS_ARCHIVED)
                    .values_list("pk", "origin_id", "destination_id", "status")
                )
                if not due:
                    return 0
                archived = (
                    Ride.objects.filter(pk__in=[row[0] for row in due])
                    .exclude(status=STATUS_ARCHIVED)
                    .update(status=STATUS_ARCHIVED, updated_at=now)
                )
                for pk, origin_id, destination_id, previous in due:
                    publish_on_commit(self.events, RideEvent(
                        kind=RIDE_STATUS_CHANGED,
                        ride_id=pk,
                        origin_id=origin_id,
                        destination_id=destination_id,
                        status=STATUS_ARCHIVED,
                        occurred_at=now,
                        payload={"previous_status": previous},
                    ))
        except STORAGE_ERRORS:
            logger.exception("Archive sweep failed")
            return 0

        logger.info("Auto-archived %d past rides", archived)
        return archived

    def sweep_purge_expired(self, retention_days: Optional[int] = None) -> int:
        """Hard-delete archived rides untouched for longer than the retention window."""
        days = self.policy.retention_days if retention_days is None else retention_days
        if days < 0:
            raise InvalidRequestError("Retention days cannot be negative.")

        now = self.clock()
        cutoff = now - timedelta(days=days)
        try:
            with transaction.atomic():
                expired = list(
                    Ride.objects.filter(status=STATUS_ARCHIVED, updated_at__lt=cutoff)
                    .values_list("pk", "origin_id", "destination_id", "status")
                )
                purged = purge_rides(expired, self.events, now, reason="retention_expired")
        except STORAGE_ERRORS:
            logger.exception("Purge sweep failed")
            return 0

        if purged:
            logger.info("Purged %d archived rides older than %d days", purged, days)
        return purged

    def sweep_orphans(self) -> OrphanSweep:
        """
        Purge historical rides that lost a location.

        Active orphans (waiting / in progress) are left alone and reported in
        ``blocking`` for an admin to resolve.
        """
        now = self.clock()
        try:
            with transaction.atomic():
                orphans = list(
                    orphaned_rides().values_list("pk", "origin_id", "destination_id", "status")
                )
                blocking = [row[0] for row in orphans if row[3] in ACTIVE_STATUSES]
                historical = [row for row in orphans if row[3] in HISTORICAL_STATUSES]
                purged = purge_rides(historical, self.events, now, reason="orphaned")
        except STORAGE_ERRORS:
            logger.exception("Orphan sweep failed")
            return OrphanSweep()

        if purged:
            logger.info("Found %d orphaned rides, purged them", purged)
        if blocking:
            logger.warning("Active rides %s reference missing locations", blocking)
        return OrphanSweep(purged=purged, blocking=blocking)

    def run_sweeps(self, retention_days: Optional[int] = None) -> Dict[str, Any]:
        """Run every sweep once, in archive -> purge -> orphan order."""
        archived = self.sweep_archive()
        purged = self.sweep_purge_expired(retention_days)
        orphans = self.sweep_orphans()
        return {
            "archived": archived,
            "purged": purged,
            "orphans_purged": orphans.purged,
            "blocking": orphans.blocking,
        }

    def run_opportunistic_sweeps(self) -> Optional[Dict[str, Any]]:
        """
        Archive and orphan sweeps ahead of a listing read.

        Throttled through the cache; returns None when skipped. Never raises.
        """
        try:
            if not acquire_sweep_slot(self.policy.sweep_throttle_seconds, self.cache):
                return None
            archived = self.sweep_archive()
            orphans = self.sweep_orphans()
        except Exception:
            logger.exception("Opportunistic sweep failed")
            return None
        return {"archived": archived, "orphans_purged": orphans.purged, "blocking": orphans.blocking}

    def preview_sweeps(self, retention_days: Optional[int] = None) -> Dict[str, int]:
        """Count what run_sweeps would touch, without changing anything."""
        days = self.policy.retention_days if retention_days is None else retention_days
        now = self.clock()
        with storage_guard("preview_sweeps"):
            orphans = orphaned_rides()
            return {
                "archive": Ride.objects.filter(departure_time__lt=now).exclude(status=STATUS_ARCHIVED).count(),
                "purge": Ride.objects.filter(
                    status=STATUS_ARCHIVED, updated_at__lt=now - timedelta(days=days)
                ).count(),
                "orphans": orphans.filter(status__in=HISTORICAL_STATUSES).count(),
                "blocking": orphans.filter(status__in=ACTIVE_STATUSES).count(),
            }

    # ===================== Explicit transitions =====================

    def update_status(self, ride_id: int, new_status: str) -> Ride:
        """
        Move a ride along waiting -> in_progress -> completed, or cancel it.

        Raises:
            InvalidRequestError: unknown status or disallowed transition
            RideNotFoundError: no such ride
        """
        if new_status not in dict(STATUS_CHOICES):
            raise InvalidRequestError(f"Unknown status '{new_status}'.")

        now = self.clock()
        with storage_guard("update_status"):
            with transaction.atomic():
                try:
                    ride = Ride.objects.select_for_update().get(pk=ride_id)
                except Ride.DoesNotExist:
                    raise RideNotFoundError(ride_id=ride_id)

                previous = ride.status
                if not rules.can_transition(previous, new_status):
                    raise InvalidRequestError(
                        f"Cannot move a {previous} ride to {new_status}.",
                        ride_id=ride.pk,
                        status=previous,
                    )

                ride.status = new_status
                ride.updated_at = now
                ride.save(update_fields=["status", "updated_at"])
                publish_on_commit(
                    self.events,
                    RideEvent.for_ride(RIDE_STATUS_CHANGED, ride, now, previous_status=previous)
                )

        logger.info("Ride %s moved from %s to %s", ride.pk, previous, new_status)
        return ride
