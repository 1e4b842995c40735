"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Find-or-create ride matching and passenger rosters
    - ride_management: Ride lifecycle sweeps, status changes, queries, policy
    - locations: Location registry
    - events: Ride event values and sinks
    - factory: Settings-driven construction of the above
"""

# Expose commonly used names at package level
from .matching import (
    RideMatchingEngine,
    MatchResult,
)
from .ride_management import (
    RideLifecycleManager,
    OrphanSweep,
    RidePolicy,
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
    # Matching
    "RideMatchingEngine",
    "MatchResult",
    # Ride management
    "RideLifecycleManager",
    "OrphanSweep",
    "RidePolicy",
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
