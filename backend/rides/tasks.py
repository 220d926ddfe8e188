"""Celery tasks for ride-related background processing."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def expire_ride_offer_task(ride_id: str, driver_id: str):
    """
    Expire a ride offer once its response window has passed.

    Scheduled by the dispatcher when a driver is targeted. If the driver has
    already answered, or the ride was re-targeted, the expiry is a no-op.
    Otherwise the offer is released and the next driver is targeted.
    """
    from services.ride_management.ride_lifecycle import handle_offer_expiry

    result = handle_offer_expiry(ride_id, driver_id)
    if result.success:
        logger.info("Expired offer on ride %s for driver %s", ride_id, driver_id)
    else:
        logger.info("Offer on ride %s for driver %s not expired: %s", ride_id, driver_id, result.error_code)
    return result.success


@shared_task
def sweep_expired_offers_task():
    """Expire every overdue offer (backstop for lost expiry tasks)."""
    from rides.services.offer_timeout import process_expired_offers

    expired, reassigned = process_expired_offers()
    return {"expired": expired, "reassigned": reassigned}
