"""Custom exceptions for ride management."""


class RideOperationError(Exception):
    """Base class for expected, recoverable ride operation failures."""

    error_code = "ride_operation_failed"
    default_message = "The ride could not be updated."

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class RideNotFoundError(RideOperationError):
    """Raised when a ride cannot be found."""
    error_code = "ride_not_found"
    default_message = "Ride not found"


class RideNotRequestedError(RideOperationError):
    """Raised when a ride is not in a requested state for accept/decline."""
    error_code = "ride_not_requested"
    default_message = "Ride is not in a requested state"


class RideAlreadyAcceptedError(RideOperationError):
    """Raised when a ride has already been accepted."""
    error_code = "ride_already_accepted"
    default_message = "Ride already taken"


class DriverNotTargetedError(RideOperationError):
    """Raised when the ride is targeted at a different driver."""
    error_code = "not_targeted_to_driver"
    default_message = "This ride is not targeted to this driver"


class InvalidTransitionError(RideOperationError):
    """Raised when a status change is not in the transition table."""
    error_code = "invalid_transition"
    default_message = "This ride cannot move to the requested status"


class OfferNotExpiredError(RideOperationError):
    """Raised when an offer expiry runs before the offer is due."""
    error_code = "offer_not_expired"
    default_message = "The offer has not expired yet"


class DriverNotFoundError(RideOperationError):
    """Raised when no driver profile matches the external account id."""
    error_code = "driver_not_found"
    default_message = "Driver profile not found"
