"""
Driver targeting.

An offer is held by one driver at a time. ``assign_next_driver`` picks the
closest eligible driver and targets the ride at them inside a single store
transaction, so two dispatchers racing on the same ride cannot both win.
After the commit the driver is notified and the offer expiry is scheduled;
both are best-effort and never undo the targeting.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from realtime.notifications import notify_driver_offer, notify_ride_event
from rides.states import DriverAcceptance, RideEvent, RideStatus, can_transition, next_status
from rides.tasks import expire_ride_offer_task
from services.ride_management.exceptions import (
    InvalidTransitionError,
    RideAlreadyAcceptedError,
    RideNotFoundError,
    RideOperationError,
)
from services.ride_management.offer_store import OfferStore, OfferTransaction, get_offer_store, run_transaction
from .candidates import DriverCandidate, find_candidate_drivers

logger = logging.getLogger(__name__)

# Dispatch outcome codes
REQUESTED_DRIVER_PENDING = "REQUESTED_DRIVER_PENDING"
IDEMPOTENT_REPEAT = "IDEMPOTENT_REPEAT"
NO_ACTIVE_DRIVERS = "NO_ACTIVE_DRIVERS"
QUEUED_AWAITING_DRIVER = "QUEUED_AWAITING_DRIVER"


@dataclass
class DispatchResult:
    """Outcome of one targeting attempt."""
    assigned: bool
    code: str
    ride: Optional[Dict[str, Any]] = None
    driver: Optional[DriverCandidate] = None
    message: str = ""
    error_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error_code is None

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "code": self.code}
        if self.message:
            payload["message"] = self.message
        if self.ride is not None:
            payload["rideId"] = self.ride.get("id")
            payload["status"] = self.ride.get("status")
            payload["expiresAt"] = self.ride.get("request_expires_at")
        if self.driver is not None:
            payload["driver"] = self.driver.as_payload()
        if self.error_code:
            payload["error"] = self.error_code
        return payload


def _targeting_event(ride: Dict[str, Any]) -> str:
    return RideEvent.RETARGET_SCHEDULED if ride.get("is_scheduled") else RideEvent.RETARGET


def _current_target(ride: Dict[str, Any]) -> Optional[DriverCandidate]:
    if not ride.get("driver_id"):
        return None
    return DriverCandidate(
        external_id=ride["driver_id"],
        name=ride.get("requested_driver_name") or "",
        car=ride.get("requested_driver_car") or "",
        seats=0,
        distance_km=ride.get("driver_distance_km") or 0.0,
    )


def _failure(error: RideOperationError, ride: Optional[Dict[str, Any]] = None) -> DispatchResult:
    return DispatchResult(
        assigned=False,
        code=error.error_code.upper(),
        ride=ride,
        message=error.message,
        error_code=error.error_code,
    )


def assign_next_driver(
    ride_id: str,
    idempotency_key: Optional[str] = None,
    *,
    store: Optional[OfferStore] = None,
) -> DispatchResult:
    """
    Target a waiting ride at the closest eligible driver.

    Args:
        ride_id: Offer document id
        idempotency_key: Client request id; a repeat with the same key
            returns the current target without writing
        store: Offer store, defaults to the Django-backed one

    Returns:
        DispatchResult. ``assigned`` is True only when this call targeted a
        driver. With no eligible driver the ride is left waiting
        (NO_ACTIVE_DRIVERS, or QUEUED_AWAITING_DRIVER for scheduled rides).
    """
    store = store or get_offer_store()

    try:
        ride = store.get(ride_id)
    except Exception:
        logger.exception("Could not load ride %s for dispatch", ride_id)
        return DispatchResult(
            assigned=False,
            code="STORE_UNAVAILABLE",
            message="Could not load the ride right now. Please try again.",
            error_code="store_unavailable",
        )

    if ride is None:
        return _failure(RideNotFoundError())

    if idempotency_key and ride.get("last_assignment_request_id") == idempotency_key:
        logger.info("Repeat dispatch for ride %s with key %s", ride_id, idempotency_key)
        return DispatchResult(
            assigned=False,
            code=IDEMPOTENT_REPEAT,
            ride=ride,
            driver=_current_target(ride),
        )

    if ride.get("status") == RideStatus.ACCEPTED:
        return _failure(RideAlreadyAcceptedError(), ride)
    if not can_transition(ride.get("status"), _targeting_event(ride)):
        return _failure(
            InvalidTransitionError(f"Ride is {ride.get('status')}, not waiting for a driver"),
            ride,
        )

    candidates = find_candidate_drivers(ride)
    if not candidates:
        code = QUEUED_AWAITING_DRIVER if ride.get("is_scheduled") else NO_ACTIVE_DRIVERS
        logger.info("No eligible drivers for ride %s (%s)", ride_id, code)
        notify_ride_event("no_drivers_available", ride, message="No drivers are available right now.")
        return DispatchResult(assigned=False, code=code, ride=ride)

    candidate = candidates[0]
    expiry_seconds = settings.OFFER_EXPIRY_SECONDS

    def mutate(tx: OfferTransaction) -> None:
        if not tx.exists:
            raise RideNotFoundError()
        status = tx.get("status")
        if status == RideStatus.ACCEPTED or tx.get("driver_acceptance") == DriverAcceptance.ACCEPTED:
            raise RideAlreadyAcceptedError()
        new_status = next_status(status, _targeting_event(tx.data))
        if candidate.external_id in (tx.get("declined_driver_ids") or []):
            raise InvalidTransitionError("Driver already declined this ride")

        now = timezone.now()
        changes = dict(
            status=new_status,
            driver_id=candidate.external_id,
            driver_acceptance=DriverAcceptance.UNSET,
            requested_driver_name=candidate.name,
            requested_driver_car=candidate.car,
            driver_distance_km=candidate.distance_km if candidate.distance_km != float("inf") else None,
            targeted_at=now,
            request_expires_at=now + timedelta(seconds=expiry_seconds),
            last_assignment_request_id=idempotency_key or "",
        )
        if not tx.get("requested_at"):
            changes["requested_at"] = now
        tx.update(**changes)

    try:
        tx, _ = run_transaction(store, ride_id, mutate)
    except RideOperationError as e:
        logger.info("Dispatch rejected for ride %s: %s", ride_id, e.error_code)
        return _failure(e)
    except Exception:
        logger.exception("Dispatch failed for ride %s", ride_id)
        return DispatchResult(
            assigned=False,
            code="STORE_UNAVAILABLE",
            message="Could not update the ride right now. Please try again.",
            error_code="store_unavailable",
        )

    targeted = tx.result()
    logger.info(
        "Ride %s targeted at driver %s (%.2f km)",
        ride_id, candidate.external_id, candidate.distance_km,
    )

    notify_driver_offer(candidate.external_id, targeted, expires_in=expiry_seconds)
    notify_ride_event("driver_requested", targeted, extra={"driver": candidate.as_payload()})
    _schedule_expiry(ride_id, candidate.external_id, expiry_seconds)

    return DispatchResult(
        assigned=True,
        code=REQUESTED_DRIVER_PENDING,
        ride=targeted,
        driver=candidate,
    )


def _schedule_expiry(ride_id: str, driver_id: str, countdown: int) -> None:
    try:
        expire_ride_offer_task.apply_async((ride_id, driver_id), countdown=countdown)
    except Exception:
        # The periodic sweep still picks the offer up
        logger.exception("Could not schedule expiry for ride %s", ride_id)
