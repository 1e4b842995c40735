"""Translate database outages into StorageUnavailableError."""

import logging
from contextlib import contextmanager

from django.db import InterfaceError, OperationalError

from .exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (OperationalError, InterfaceError)


@contextmanager
def storage_guard(operation: str):
    """Re-raise connection/timeout failures as StorageUnavailableError."""
    try:
        yield
    except STORAGE_ERRORS as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageUnavailableError() from exc


def read_with_retry(func, *args, operation: str = "read", **kwargs):
    """
    Run an idempotent read, retrying once on a storage failure.

    Writes must not go through here; they surface StorageUnavailableError
    and leave the retry decision to the caller.
    """
    try:
        return func(*args, **kwargs)
    except STORAGE_ERRORS as exc:
        logger.warning("Retrying %s after storage failure: %s", operation, exc)
    with storage_guard(operation):
        return func(*args, **kwargs)
