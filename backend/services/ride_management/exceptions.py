"""Custom exceptions for ride management.

Every exception carries a stable machine-readable ``code`` and an HTTP
``status_code`` so transports can map them without inspecting messages.
"""

from typing import Any, Dict, Optional


class RideServiceError(Exception):
    """Base class for errors raised by the ride services."""

    code = "internal_error"
    status_code = 500
    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class InvalidRequestError(RideServiceError):
    """Raised for malformed or contradictory input."""
    code = "invalid_request"
    status_code = 400
    default_message = "The request is invalid."


class UnknownLocationError(RideServiceError):
    """Raised when a referenced location does not exist."""
    code = "unknown_location"
    status_code = 400
    default_message = "Location not found."


class LocationInactiveError(RideServiceError):
    """Raised when a referenced location has been disabled."""
    code = "location_inactive"
    status_code = 400
    default_message = "This location is not currently available."


class PastDepartureError(RideServiceError):
    """Raised when the departure time is not in the future."""
    code = "past_departure"
    status_code = 400
    default_message = "Departure time must be in the future."


class OutsideServiceHoursError(RideServiceError):
    """Raised when the departure falls outside the operating window."""
    code = "outside_service_hours"
    status_code = 400
    default_message = "Rides can only be scheduled during service hours."


class DuplicatePassengerError(RideServiceError):
    """Raised when the phone number is already on the ride."""
    code = "duplicate_passenger"
    status_code = 400
    default_message = "You have already joined this ride."


class RideFullError(RideServiceError):
    """Raised when the ride has no seats left."""
    code = "ride_full"
    status_code = 400
    default_message = "Ride is full."


class DuplicateNameError(RideServiceError):
    """Raised when a location name is already taken."""
    code = "duplicate_name"
    status_code = 409
    default_message = "A location with this name already exists."


class LocationInUseError(RideServiceError):
    """Raised when a location still has active rides attached."""
    code = "location_in_use"
    status_code = 409
    default_message = "This location still has active rides and cannot be deleted."


class StorageUnavailableError(RideServiceError):
    """Raised when the database cannot be reached. Safe to retry."""
    code = "storage_unavailable"
    status_code = 503
    default_message = "The service is temporarily unavailable. Please try again."


class NotFoundError(RideServiceError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class RideNotFoundError(NotFoundError):
    """Raised when a ride cannot be found."""
    default_message = "Ride not found."


class LocationNotFoundError(NotFoundError):
    """Raised when a location cannot be found."""
    default_message = "Location not found."
