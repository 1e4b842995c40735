from rest_framework.permissions import SAFE_METHODS
from rest_framework.throttling import UserRateThrottle


class RideWriteThrottle(UserRateThrottle):
    """Tighter per-client limit on requests that claim seats or open rides"""
    scope = 'ride_writes'

    def allow_request(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().allow_request(request, view)
