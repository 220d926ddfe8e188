"""
Sweep for overdue ride offers.

Each targeting schedules its own Celery expiry task; this sweep is the
backstop for tasks that were lost (worker restart, broker outage). It runs
from the ``process_offer_timeouts`` command or ``sweep_expired_offers_task``.
"""

from typing import Tuple

from django.db import close_old_connections
from django.utils import timezone

from rides.models import RideRequest
from rides.states import REQUESTED_CLASS


def process_expired_offers(limit: int = 200) -> Tuple[int, int]:
    """
    Expire offers whose response window has passed and re-dispatch each ride.

    Returns a tuple of (expired_count, reassigned_count).
    """
    from services.ride_management.ride_lifecycle import handle_offer_expiry

    now = timezone.now()
    overdue = (
        RideRequest.objects
        .filter(status__in=list(REQUESTED_CLASS), request_expires_at__lte=now)
        .exclude(driver_id="")
        .order_by("request_expires_at")
        .values_list("id", "driver_id")[:limit]
    )

    expired_count = 0
    reassigned_count = 0

    for ride_id, driver_id in list(overdue):
        result = handle_offer_expiry(ride_id, driver_id)
        if not result.success:
            continue
        expired_count += 1
        if (result.extra or {}).get("reassigned"):
            reassigned_count += 1

    # Close stale DB connections for long-running workers
    close_old_connections()
    return expired_count, reassigned_count
