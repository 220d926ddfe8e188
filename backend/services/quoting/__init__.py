"""
Quoting service - distance, drive time and fare for a pair of locations.

This module handles:
    - Talking to the directions/geocoding provider
    - Computing a traffic-aware Quote with geocode fallback
    - Fare estimates for a ride type
    - Live ETA polling with single-flight cancellation
"""

from .directions import DirectionsClient, DirectionsError
from .quote_engine import Location, Quote, QuoteEngine
from .pricing import estimate_fare_cents, seat_requirement
from .realtime_eta import RealtimeETAPoller

__all__ = [
    "DirectionsClient",
    "DirectionsError",
    "Location",
    "Quote",
    "QuoteEngine",
    "estimate_fare_cents",
    "seat_requirement",
    "RealtimeETAPoller",
]
