"""DRF exception handler translating ride service errors into responses."""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.ride_management.exceptions import RideServiceError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """
    Map ``RideServiceError`` subclasses to their status code and body.

    DRF's own exceptions keep DRF's handling. Anything else is logged and
    answered with a generic 500 so no internal detail leaks to clients.
    """
    if isinstance(exc, RideServiceError):
        if exc.status_code >= 500:
            logger.warning("Service error %s in %s: %s", exc.code, _view_name(context), exc.message)
        return Response(exc.as_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    logger.exception("Unhandled error in %s", _view_name(context), exc_info=exc)
    return Response(
        {"error": "internal_error", "message": "An unexpected error occurred."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _view_name(context):
    view = (context or {}).get("view")
    return view.__class__.__name__ if view is not None else "unknown view"
