"""
Driver matching service.

This module handles:
    - Finding eligible online drivers for a ride, closest first
    - Targeting the ride at the next driver (one at a time)
    - Scheduling offer expiry and notifying the targeted driver
"""
