"""
Core ride lifecycle operations.

Glue between the HTTP/WebSocket/task layers and the offer guard: resolve the
driver, run the guarded transition, then fan out notifications and
re-dispatch after the transition has committed.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from drivers.services import assignment_fields, get_driver_by_external_id
from realtime.notifications import notify_offer_withdrawn, notify_ride_event
from rides.states import RideStatus, is_requested_class
from services.matching.dispatcher import DispatchResult, assign_next_driver
from . import offer_guard
from .exceptions import DriverNotFoundError
from .offer_guard import RideResult
from .offer_store import OfferStore, get_offer_store

logger = logging.getLogger(__name__)


def _with_dispatch(result: RideResult, dispatch: DispatchResult) -> RideResult:
    result.extra = {
        "reassigned": dispatch.assigned,
        "dispatch": dispatch.as_payload(),
    }
    if dispatch.ride is not None:
        result.ride = dispatch.ride
    return result


# ===================== Creating Rides =====================

def create_ride_request(
    data: Dict[str, Any],
    *,
    store: Optional[OfferStore] = None,
) -> Tuple[Dict[str, Any], DispatchResult]:
    """
    Store a new ride waiting for a driver and try to target one right away.

    Args:
        data: Validated ride fields (see ``RideCreateSerializer``)
        store: Offer store, defaults to the Django-backed one

    Returns:
        (created ride document, dispatch outcome)
    """
    store = store or get_offer_store()
    document = {
        **data,
        "id": data.get("id") or uuid.uuid4().hex,
        "status": RideStatus.REQUESTED_PENDING_DRIVER,
        "declined_driver_ids": [],
        "driver_id": "",
    }
    ride = store.create(document)
    logger.info("Created ride %s for passenger %s", ride["id"], ride.get("passenger_id") or "-")

    dispatch = assign_next_driver(ride["id"], store=store)
    return dispatch.ride or ride, dispatch


# ===================== Driver Responses =====================

def handle_accept(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    """Accept on behalf of a driver and tell the ride's watchers."""
    profile = get_driver_by_external_id(driver_id)
    if profile is None:
        error = DriverNotFoundError()
        return RideResult(success=False, message=error.message, error_code=error.error_code)

    result = offer_guard.accept_ride(
        ride_id,
        driver_id,
        assignment=assignment_fields(profile),
        store=store,
    )
    if result.success:
        notify_ride_event("ride_accepted", result.ride, message="Your driver is on the way.")
    return result


def handle_decline(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    """Decline an offer, then target the next eligible driver."""
    result = offer_guard.decline_ride(ride_id, driver_id, store=store)
    if not result.success:
        return result

    notify_offer_withdrawn(driver_id, ride_id, reason="declined")
    return _with_dispatch(result, assign_next_driver(ride_id, store=store))


def handle_offer_expiry(
    ride_id: str,
    driver_id: str,
    *,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """Release an overdue offer, then target the next eligible driver."""
    result = offer_guard.expire_offer(ride_id, driver_id, store=store)
    if not result.success:
        return result

    notify_offer_withdrawn(
        driver_id,
        ride_id,
        reason="expired",
        message="Your ride offer has timed out.",
    )
    return _with_dispatch(result, assign_next_driver(ride_id, store=store))


# ===================== Ride Progress =====================

def handle_start(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    result = offer_guard.start_ride(ride_id, driver_id, store=store)
    if result.success:
        notify_ride_event("ride_started", result.ride)
    return result


def handle_complete(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    result = offer_guard.complete_ride(ride_id, driver_id, store=store)
    if result.success:
        notify_ride_event("ride_completed", result.ride, message="You have arrived.")
    return result


def handle_cancel(
    ride_id: str,
    reason: str = "No reason provided",
    *,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """
    Cancel a ride. A driver still holding the open offer gets a withdrawal
    so their app can drop it.
    """
    store = store or get_offer_store()
    try:
        before = store.get(ride_id)
    except Exception:
        logger.exception("Could not read ride %s before cancelling", ride_id)
        before = None

    result = offer_guard.cancel_ride(ride_id, reason, store=store)
    if not result.success:
        return result

    if before and before.get("driver_id") and is_requested_class(before.get("status")):
        notify_offer_withdrawn(before["driver_id"], ride_id, reason="cancelled")
    notify_ride_event("ride_cancelled", result.ride, message=reason)
    return result

