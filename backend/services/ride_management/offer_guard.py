"""
Offer transition guard.

Every operation here is one indivisible read-check-write against a single offer
document. Preconditions are checked inside the store transaction and any
failure raises before a change is staged, so a rejected call never writes.
At the boundary, failures become a ``RideResult``; nothing escapes as an
unhandled exception.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from django.utils import timezone

from rides.states import (
    DriverAcceptance,
    RideEvent,
    RideStatus,
    is_requested_class,
    next_status,
)
from .exceptions import (
    DriverNotTargetedError,
    OfferNotExpiredError,
    RideAlreadyAcceptedError,
    RideNotFoundError,
    RideNotRequestedError,
    RideOperationError,
)
from .offer_store import OfferStore, OfferTransaction, get_offer_store, run_transaction

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Dict[str, Any]] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _run_transaction(
    action: str,
    ride_id: str,
    mutate: Callable[[OfferTransaction], str],
    store: Optional[OfferStore],
) -> RideResult:
    store = store or get_offer_store()

    def checked(tx: OfferTransaction) -> str:
        if not tx.exists:
            raise RideNotFoundError()
        return mutate(tx)

    try:
        tx, message = run_transaction(store, ride_id, checked)
    except RideOperationError as e:
        logger.info("%s rejected for ride %s: %s", action, ride_id, e.error_code)
        return RideResult(success=False, message=e.message, error_code=e.error_code)
    except Exception:
        logger.exception("%s failed for ride %s", action, ride_id)
        return RideResult(
            success=False,
            message="Could not update the ride right now. Please try again.",
            error_code="store_unavailable",
        )

    ride = tx.result()
    logger.info("%s applied to ride %s (status=%s)", action, ride_id, ride.get("status"))
    return RideResult(success=True, ride=ride, message=message)


def _require_targeted_offer(tx: OfferTransaction, driver_id: str) -> str:
    """Check the offer is open and aimed at ``driver_id``; return its status."""
    status = tx.get("status")
    if status == RideStatus.ACCEPTED or tx.get("driver_acceptance") == DriverAcceptance.ACCEPTED:
        raise RideAlreadyAcceptedError()
    if not is_requested_class(status):
        raise RideNotRequestedError()
    if tx.get("driver_id") != driver_id:
        raise DriverNotTargetedError()
    return status


def _release_target(tx: OfferTransaction, driver_id: str, event: str) -> None:
    tx.array_union("declined_driver_ids", driver_id)
    tx.update(
        status=next_status(tx.get("status"), event),
        driver_acceptance=DriverAcceptance.DECLINED,
        driver_id="",
        requested_driver_name="",
        requested_driver_car="",
        request_expires_at=None,
    )


# ===================== Offer Operations =====================

def accept_ride(
    ride_id: str,
    driver_id: str,
    *,
    assignment: Optional[Dict[str, Any]] = None,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """
    Accept an offer on behalf of the driver it is targeted at.

    Args:
        ride_id: Offer document id
        driver_id: External account id of the accepting driver
        assignment: Extra driver details copied onto the ride
            (assigned_driver_name, assigned_driver_car, assigned_driver_seats)
        store: Offer store, defaults to the Django-backed one

    Returns:
        RideResult; on failure ``error_code`` is one of ride_not_found,
        ride_already_accepted, ride_not_requested, not_targeted_to_driver
    """
    def mutate(tx: OfferTransaction) -> str:
        status = _require_targeted_offer(tx, driver_id)
        tx.update(
            status=next_status(status, RideEvent.ACCEPT),
            driver_acceptance=DriverAcceptance.ACCEPTED,
            accepted_at=timezone.now(),
            request_expires_at=None,
            **(assignment or {}),
        )
        return "Ride accepted"

    return _run_transaction("accept", ride_id, mutate, store)


def decline_ride(
    ride_id: str,
    driver_id: str,
    *,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """
    Decline an offer targeted at ``driver_id``.

    The driver is recorded in ``declined_driver_ids`` (once, even on retry),
    the target is cleared and the offer waits for the dispatcher.
    """
    def mutate(tx: OfferTransaction) -> str:
        _require_targeted_offer(tx, driver_id)
        _release_target(tx, driver_id, RideEvent.DECLINE)
        return "Offer declined"

    return _run_transaction("decline", ride_id, mutate, store)


def expire_offer(
    ride_id: str,
    driver_id: str,
    *,
    now: Optional[datetime] = None,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """Decline on the driver's behalf once ``request_expires_at`` has passed."""
    now = now or timezone.now()

    def mutate(tx: OfferTransaction) -> str:
        _require_targeted_offer(tx, driver_id)
        expires_at = tx.get("request_expires_at")
        if expires_at is None or expires_at > now:
            raise OfferNotExpiredError()
        _release_target(tx, driver_id, RideEvent.EXPIRE)
        return "Offer expired"

    return _run_transaction("expire", ride_id, mutate, store)


# ===================== Ride Progress =====================

def start_ride(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    """Driver picked the passenger up."""
    def mutate(tx: OfferTransaction) -> str:
        if tx.get("driver_id") != driver_id:
            raise DriverNotTargetedError("Ride is assigned to a different driver")
        tx.update(
            status=next_status(tx.get("status"), RideEvent.START),
            started_at=timezone.now(),
        )
        return "Ride started"

    return _run_transaction("start", ride_id, mutate, store)


def complete_ride(ride_id: str, driver_id: str, *, store: Optional[OfferStore] = None) -> RideResult:
    """Driver dropped the passenger off."""
    def mutate(tx: OfferTransaction) -> str:
        if tx.get("driver_id") != driver_id:
            raise DriverNotTargetedError("Ride is assigned to a different driver")
        now = timezone.now()
        tx.update(
            status=next_status(tx.get("status"), RideEvent.COMPLETE),
            completed_at=now,
            processed_at=now,
        )
        return "Ride completed"

    return _run_transaction("complete", ride_id, mutate, store)


def cancel_ride(
    ride_id: str,
    reason: str = "No reason provided",
    *,
    store: Optional[OfferStore] = None,
) -> RideResult:
    """Cancel from any non-terminal state."""
    def mutate(tx: OfferTransaction) -> str:
        now = timezone.now()
        tx.update(
            status=next_status(tx.get("status"), RideEvent.CANCEL),
            cancelled_at=now,
            processed_at=now,
            cancellation_reason=reason,
            request_expires_at=None,
        )
        return "Ride cancelled"

    return _run_transaction("cancel", ride_id, mutate, store)
