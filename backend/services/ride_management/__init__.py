"""
Ride management service - lifecycle, queries and policy.

This module handles:
    - Archiving departed rides and purging stale archives
    - Cleaning up rides orphaned by deleted locations
    - Explicit status transitions
    - Read queries for listings and the admin dashboard
"""

from .ride_lifecycle import (
    RideLifecycleManager,
    OrphanSweep,
    orphaned_rides,
    purge_rides,
)

from .policy import RidePolicy, parse_service_hours

from .exceptions import (
    RideServiceError,
    InvalidRequestError,
    UnknownLocationError,
    LocationInactiveError,
    PastDepartureError,
    OutsideServiceHoursError,
    DuplicatePassengerError,
    RideFullError,
    DuplicateNameError,
    LocationInUseError,
    StorageUnavailableError,
    NotFoundError,
    RideNotFoundError,
    LocationNotFoundError,
)

__all__ = [
    # Lifecycle
    "RideLifecycleManager",
    "OrphanSweep",
    "orphaned_rides",
    "purge_rides",
    # Policy
    "RidePolicy",
    "parse_service_hours",
    # Exceptions
    "RideServiceError",
    "InvalidRequestError",
    "UnknownLocationError",
    "LocationInactiveError",
    "PastDepartureError",
    "OutsideServiceHoursError",
    "DuplicatePassengerError",
    "RideFullError",
    "DuplicateNameError",
    "LocationInUseError",
    "StorageUnavailableError",
    "NotFoundError",
    "RideNotFoundError",
    "LocationNotFoundError",
]
