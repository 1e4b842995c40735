"""Celery tasks for the scheduled ride sweeps."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


def _manager():
    from services.factory import build_lifecycle_manager
    return build_lifecycle_manager()


@shared_task
def archive_past_rides_task():
    """Archive every ride whose departure time has passed."""
    return _manager().sweep_archive()


@shared_task
def purge_expired_rides_task(retention_days=None):
    """Delete archived rides older than the retention window."""
    return _manager().sweep_purge_expired(retention_days)


@shared_task
def sweep_orphaned_rides_task():
    """Purge historical rides whose locations are gone."""
    result = _manager().sweep_orphans()
    return {"purged": result.purged, "blocking": result.blocking}


@shared_task
def run_ride_sweeps_task(retention_days=None):
    """
    Daily maintenance run (scheduled by Celery beat).

    Archive, then purge, then orphan cleanup, so rides archived today are
    only purged once their retention window has passed.
    """
    result = _manager().run_sweeps(retention_days)
    logger.info(
        "Ride sweeps: archived=%d purged=%d orphans_purged=%d blocking=%s",
        result["archived"], result["purged"], result["orphans_purged"], result["blocking"]
    )
    return result
