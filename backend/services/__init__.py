"""
Services package - Business logic layer.

This package contains all business logic services that operate on the ride
and driver documents but are decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Offer store, transition guard and ride lifecycle
    - matching: Candidate search and driver targeting
    - quoting: Directions provider, quotes, fares and live ETA
"""
