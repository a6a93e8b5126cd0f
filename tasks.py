import logging

from celery import shared_task

from services.hold_reclaimer import reclaim_quietly

logger = logging.getLogger(__name__)


@shared_task(name="holds.release_expired_holds")
def release_expired_holds():
    """Periodic sweep of expired holds across all fields."""
    released = reclaim_quietly()
    logger.info("Periodic sweep released %s hold(s)", released)
    return released
