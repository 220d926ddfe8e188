"""Fare estimate on top of a quote, plus ride-type constants shared with dispatch."""

from decimal import Decimal, ROUND_HALF_UP

RIDE_TYPE_MULTIPLIERS = {
    "standard": 1.0,
    "comfort": 1.2,
    "xl": 1.5,
}

SEATS_BY_RIDE_TYPE = {
    "standard": 4,
    "comfort": 6,
    "xl": 7,
}


def seat_requirement(ride_type: str) -> int:
    return SEATS_BY_RIDE_TYPE.get(ride_type, SEATS_BY_RIDE_TYPE["standard"])


def estimate_fare_cents(distance_miles: float, drive_minutes: int, ride_type: str, config) -> int:
    """
    Fare in cents for a quoted trip.

    ``config`` is anything exposing the PricingConfig fields
    (base_fare_cents, per_mile_cents, per_minute_cents, minimum_fare_cents,
    surge_multiplier).
    """
    surge = config.surge_multiplier if config.surge_multiplier and config.surge_multiplier > 0 else 1.0
    multiplier = RIDE_TYPE_MULTIPLIERS.get(ride_type, 1.0)

    raw = (
        Decimal(config.base_fare_cents)
        + Decimal(str(distance_miles)) * Decimal(config.per_mile_cents)
        + Decimal(drive_minutes) * Decimal(config.per_minute_cents)
    ) * Decimal(str(surge)) * Decimal(str(multiplier))

    fare = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(config.minimum_fare_cents, fare)
