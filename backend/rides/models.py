from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .constants import MAX_SEATS, MIN_SEATS, STATUS_CHOICES, STATUS_WAITING


class Ride(models.Model):
    """A departure-time-bound carpool between two locations."""

    # Weak references: a deleted location leaves an orphan for the sweeps to find
    origin = models.ForeignKey(
        'locations.Location',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='departing_rides'
    )
    destination = models.ForeignKey(
        'locations.Location',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='arriving_rides'
    )
    departure_time = models.DateTimeField()

    # Whoever opened the ride
    creator_name = models.CharField(max_length=50, blank=True, default='')
    creator_phone = models.CharField(max_length=15, blank=True, default='')

    # Capacity; null means no seat limit
    max_passengers = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(MIN_SEATS), MaxValueValidator(MAX_SEATS)]
    )
    seats_taken = models.PositiveSmallIntegerField(default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_WAITING)
    notes = models.TextField(blank=True, default='')

    # Timestamps are set by the services from their injected clock
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'rides'
        ordering = ['departure_time']
        indexes = [
            models.Index(
                fields=['origin', 'destination', 'status', 'departure_time'],
                name='ride_route_lookup'
            ),
            models.Index(fields=['status', 'updated_at'], name='ride_status_updated'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(origin=F('destination')),
                name='ride_origin_not_destination'
            ),
            models.CheckConstraint(
                condition=Q(max_passengers__isnull=True) | Q(seats_taken__lte=F('max_passengers')),
                name='ride_seats_within_capacity'
            ),
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.origin_id} -> {self.destination_id} @ {self.departure_time:%Y-%m-%d %H:%M} ({self.status})"

    @property
    def available_seats(self):
        if self.max_passengers is None:
            return None
        return max(self.max_passengers - self.seats_taken, 0)

    def is_full(self) -> bool:
        return self.max_passengers is not None and self.seats_taken >= self.max_passengers


class Passenger(models.Model):
    """One seat on a ride. The roster belongs to its ride alone."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='passengers'
    )
    name = models.CharField(max_length=50)
    phone = models.CharField(max_length=15)
    joined_at = models.DateTimeField(default=timezone.now)

    # Client-supplied key so a retried request does not join twice
    idempotency_key = models.CharField(max_length=100, null=True, blank=True, unique=True)

    class Meta:
        db_table = 'ride_passengers'
        ordering = ['joined_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'phone'],
                name='unique_ride_passenger_phone'
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.phone}) on Ride #{self.ride_id}"
