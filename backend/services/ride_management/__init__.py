"""
Ride management service - Offer transitions and ride lifecycle.

This module handles:
    - Storing offer documents behind an injectable store
    - Accepting/declining/expiring offers atomically
    - Starting, completing and cancelling rides
    - Creating ride requests and re-dispatching after a decline

Import from the submodules directly (offer_store, offer_guard,
ride_lifecycle, exceptions); ``rides.states`` depends on ``exceptions`` so
nothing is imported eagerly here.
"""
