"""
Notification helpers for sending WebSocket messages to connected clients.

Groups:
    - driver_<external_id>: one driver's sessions (offers, withdrawals)
    - ride_<ride_id>: everyone watching one ride (passenger app, driver app)

Notifications are best-effort: a missing channel layer or a failed send is
logged and reported as False, never raised into the caller's transaction.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

_GROUP_UNSAFE = re.compile(r"[^0-9A-Za-z_.\-]")


def driver_group(driver_id: str) -> str:
    return "driver_" + _GROUP_UNSAFE.sub("_", str(driver_id))[:90]


def ride_group(ride_id: str) -> str:
    return "ride_" + _GROUP_UNSAFE.sub("_", str(ride_id))[:90]


def _ride_data(ride: Dict[str, Any]) -> Dict[str, Any]:
    from rides.serializers import RideDocumentSerializer
    return dict(RideDocumentSerializer(ride).data)


def _group_send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available, dropping %s for %s", payload.get("type"), group)
        return False

    try:
        logger.debug("WS -> %s: %s", group, payload.get("type"))
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to send %s to %s", payload.get("type"), group)
        return False
    return True


# ---------------------- Driver Notifications ----------------------

def notify_driver_offer(driver_id: str, ride: Dict[str, Any], expires_in: Optional[int] = None) -> bool:
    """Tell a driver they are now the target of ``ride``."""
    if not driver_id:
        return False
    payload = {
        "type": "ride_offer",
        "ride_id": ride.get("id"),
        "ride_data": _ride_data(ride),
    }
    if expires_in is not None:
        payload["expires_in"] = expires_in
    return _group_send(driver_group(driver_id), payload)


def notify_offer_withdrawn(driver_id: str, ride_id: str, reason: str, message: str = "") -> bool:
    """Tell a driver the offer they held is no longer theirs."""
    if not driver_id:
        return False
    payload = {
        "type": "ride_offer_withdrawn",
        "ride_id": ride_id,
        "reason": reason,
    }
    if message:
        payload["message"] = message
    return _group_send(driver_group(driver_id), payload)


# ---------------------- Ride Notifications ----------------------

def notify_ride_event(
    event_type: str,
    ride: Dict[str, Any],
    message: str = "",
    extra: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Send a ride event to everyone watching the ride.

    Args:
        event_type: Handler name in consumer (ride_accepted, ride_started,
            ride_completed, ride_cancelled, driver_assigned, no_drivers_available)
        ride: Offer document after the change
        message: Optional message to include
        extra: Additional payload data
    """
    ride_id = ride.get("id")
    if not ride_id:
        return False

    payload = {
        "type": event_type,
        "ride_id": ride_id,
        "status": ride.get("status"),
        "ride_data": _ride_data(ride),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _group_send(ride_group(ride_id), payload)
