"""
Driver presence tracking.

One tracker per driver session. The session only publishes once the driver's
document is resolved and foreground location permission is granted; position
updates arrive already time/distance gated by the device.
"""

import logging
from typing import Optional

from drivers import services

logger = logging.getLogger(__name__)


class DriverPresenceTracker:
    """Keeps one driver's location document fresh while their session is active."""

    def __init__(self, external_id: str):
        self.external_id = external_id
        self.profile_id: Optional[int] = None
        self.active = False

    def start(self, permission_granted: bool) -> bool:
        """
        Begin publishing. Returns False (and writes nothing) when the driver
        has no document or location permission was denied.
        """
        profile = services.get_driver_by_external_id(self.external_id)
        if profile is None:
            logger.warning("No driver document for %s; presence not started", self.external_id)
            return False

        self.profile_id = profile.pk
        if not permission_granted:
            logger.info("Location permission denied for driver %s; staying offline", self.external_id)
            return False

        self.active = True
        logger.info("Presence session started for driver %s", self.external_id)
        return True

    def record_position(self, lat: float, lon: float) -> bool:
        """Upsert the latest position; dropped updates are harmless."""
        if not self.active:
            return False
        try:
            return services.mark_driver_online(self.profile_id, lat, lon) > 0
        except Exception:
            logger.warning("Failed to publish location for driver %s", self.external_id, exc_info=True)
            return False

    def permission_changed(self, granted: bool) -> None:
        if not granted:
            self.stop()
        elif self.profile_id is not None and not self.active:
            self.active = True
            logger.info("Location permission granted for driver %s; presence resumed", self.external_id)

    def stop(self) -> None:
        """Best-effort offline flag; failures are logged, never raised."""
        if not self.active:
            return
        self.active = False
        try:
            services.mark_driver_offline(self.profile_id)
            logger.info("Presence session ended for driver %s", self.external_id)
        except Exception:
            logger.exception("Failed to mark driver %s offline", self.external_id)
