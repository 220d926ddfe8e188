"""Driver WebSocket consumer: presence session, ride offers and ride watching."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from drivers.presence import DriverPresenceTracker
from realtime.notifications import driver_group, ride_group

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Presence session (start with permission, location updates, stop)
        - Ride offer / withdrawal notifications on driver_<id>
        - Watching a ride (ride_<id>) so an offer taken elsewhere disappears
    """

    async def on_connect(self):
        """Join the driver's personal group."""
        self.driver_id = self.scope["url_route"]["kwargs"]["driver_id"]
        self.tracker = DriverPresenceTracker(self.driver_id)

        await self._join_group(driver_group(self.driver_id))

        await self.send_json({
            "type": "connection_established",
            "driver_id": self.driver_id,
            "message": "Driver connected successfully",
        })

    async def on_disconnect(self, close_code):
        """Component torn down: end the presence session."""
        tracker = getattr(self, "tracker", None)
        if tracker is not None:
            await database_sync_to_async(tracker.stop)()

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "presence_start":
            await self._handle_presence_start(data)
        elif msg_type == "permission_changed":
            await self._handle_permission_changed(data)
        elif msg_type == "driver_location_update":
            await self._handle_location_update(data)
        elif msg_type == "presence_stop":
            await database_sync_to_async(self.tracker.stop)()
            await self.send_success("presence_stopped")
        elif msg_type == "watch_ride":
            await self._handle_watch(data, watch=True)
        elif msg_type == "unwatch_ride":
            await self._handle_watch(data, watch=False)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_presence_start(self, data: Dict[str, Any]):
        granted = bool(data.get("permission"))
        started = await database_sync_to_async(self.tracker.start)(granted)
        if started:
            await self.send_success("presence_started")
        elif self.tracker.profile_id is None:
            await self.send_error("Driver profile not found")
        else:
            await self.send_success("presence_denied", message="Location permission is required to go online")

    async def _handle_permission_changed(self, data: Dict[str, Any]):
        await database_sync_to_async(self.tracker.permission_changed)(bool(data.get("permission")))
        await self.send_success("presence_status", active=self.tracker.active)

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            await self.send_error("latitude and longitude must be numbers")
            return

        # Dropped updates are harmless; the next one carries the position
        recorded = await database_sync_to_async(self.tracker.record_position)(lat, lon)
        logger.debug("Driver %s location update: lat=%s, lon=%s, recorded=%s", self.driver_id, lat, lon, recorded)

    async def _handle_watch(self, data: Dict[str, Any], watch: bool):
        ride_id = data.get("ride_id")
        if not ride_id:
            await self.send_error("ride_id is required")
            return

        if watch:
            await self._join_group(ride_group(ride_id))
        else:
            await self._leave_group(ride_group(ride_id))
        await self.send_success("watching" if watch else "unwatched", ride_id=ride_id)
