"""
Ride offer status set and transition table.

Every status change of a RideRequest goes through ``next_status``. Anything
not listed in TRANSITIONS is rejected, whatever fields the row happens to have.
"""

from django.db import models

from services.ride_management.exceptions import InvalidTransitionError


class RideStatus(models.TextChoices):
    REQUESTED = 'requested', 'Requested'
    SCHEDULED_REQUESTED = 'scheduled_requested', 'Scheduled ride requested'
    REQUESTED_PENDING_DRIVER = 'requested_pending_driver', 'Waiting for a driver'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    IN_PROGRESS = 'in_progress', 'In progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class DriverAcceptance(models.TextChoices):
    UNSET = '', 'No decision'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'


class RideEvent(models.TextChoices):
    ACCEPT = 'accept'
    DECLINE = 'decline'
    EXPIRE = 'expire'
    RETARGET = 'retarget'
    RETARGET_SCHEDULED = 'retarget_scheduled'
    START = 'start'
    COMPLETE = 'complete'
    CANCEL = 'cancel'


# Statuses from which a targeted driver may accept or decline
REQUESTED_CLASS = frozenset({RideStatus.REQUESTED, RideStatus.SCHEDULED_REQUESTED})

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

TRANSITIONS = {
    (RideStatus.REQUESTED, RideEvent.ACCEPT): RideStatus.ACCEPTED,
    (RideStatus.SCHEDULED_REQUESTED, RideEvent.ACCEPT): RideStatus.ACCEPTED,
    (RideStatus.REQUESTED, RideEvent.DECLINE): RideStatus.REQUESTED_PENDING_DRIVER,
    (RideStatus.SCHEDULED_REQUESTED, RideEvent.DECLINE): RideStatus.REQUESTED_PENDING_DRIVER,
    (RideStatus.REQUESTED, RideEvent.EXPIRE): RideStatus.REQUESTED_PENDING_DRIVER,
    (RideStatus.SCHEDULED_REQUESTED, RideEvent.EXPIRE): RideStatus.REQUESTED_PENDING_DRIVER,
    (RideStatus.REQUESTED_PENDING_DRIVER, RideEvent.RETARGET): RideStatus.REQUESTED,
    (RideStatus.REQUESTED_PENDING_DRIVER, RideEvent.RETARGET_SCHEDULED): RideStatus.SCHEDULED_REQUESTED,
    (RideStatus.ACCEPTED, RideEvent.START): RideStatus.IN_PROGRESS,
    (RideStatus.IN_PROGRESS, RideEvent.COMPLETE): RideStatus.COMPLETED,
}

# Any non-terminal ride can be cancelled
for _status in RideStatus:
    if _status not in TERMINAL_STATUSES:
        TRANSITIONS[(_status, RideEvent.CANCEL)] = RideStatus.CANCELLED


def can_transition(status: str, event: str) -> bool:
    return (status, event) in TRANSITIONS


def next_status(status: str, event: str) -> str:
    """Return the status reached from ``status`` on ``event``."""
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot {event} a ride that is {status or 'unknown'}"
        ) from None


def is_requested_class(status: str) -> bool:
    return status in REQUESTED_CLASS
