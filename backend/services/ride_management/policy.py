"""Ride policy: the tunable rules the matching and lifecycle services obey."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple

from django.core.exceptions import ImproperlyConfigured


def parse_service_hours(value) -> Optional[Tuple[int, int]]:
    """
    Parse a ``"start-end"`` hour range such as ``"6-22"``.

    ``None`` or an empty string disables the service-hours check. A range
    whose start is after its end wraps midnight (``"22-6"``).
    """
    if value in (None, ""):
        return None
    if isinstance(value, (tuple, list)):
        start, end = value
    else:
        try:
            start, end = (int(part) for part in str(value).split("-", 1))
        except ValueError:
            raise ImproperlyConfigured(
                f"RIDE_SERVICE_HOURS must look like '6-22', got {value!r}"
            )
    start, end = int(start), int(end)
    if not (0 <= start <= 23 and 0 <= end <= 24) or start == end:
        raise ImproperlyConfigured(f"Invalid RIDE_SERVICE_HOURS range: {value!r}")
    return start, end


@dataclass(frozen=True)
class RidePolicy:
    match_window: timedelta = timedelta(minutes=30)
    # None means rides are created without a seat limit
    default_max_passengers: Optional[int] = 4
    service_hours: Optional[Tuple[int, int]] = None
    retention_days: int = 30
    sweep_throttle_seconds: int = 60

    @classmethod
    def from_settings(cls) -> "RidePolicy":
        from django.conf import settings

        max_passengers = getattr(settings, "RIDE_DEFAULT_MAX_PASSENGERS", 4)
        return cls(
            match_window=timedelta(minutes=getattr(settings, "RIDE_MATCH_WINDOW_MINUTES", 30)),
            default_max_passengers=int(max_passengers) if max_passengers else None,
            service_hours=parse_service_hours(getattr(settings, "RIDE_SERVICE_HOURS", None)),
            retention_days=getattr(settings, "RIDE_ARCHIVE_RETENTION_DAYS", 30),
            sweep_throttle_seconds=getattr(settings, "RIDE_SWEEP_THROTTLE_SECONDS", 60),
        )
