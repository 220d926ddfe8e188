"""
Realtime package for WebSocket communication.

This package provides:
- WebSocket consumers for driver sessions and live ETA
- Notification helpers for pushing ride events to channel groups

Key Components:
    - consumers/: WebSocket consumers (driver, eta)
    - notifications.py: ride offer / ride event notification helpers
    - routing.py: websocket URL patterns mounted by the ASGI app

Usage:
    from realtime.notifications import notify_driver_offer, notify_ride_event
"""
