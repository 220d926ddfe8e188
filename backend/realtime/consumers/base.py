"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Identity is established upstream (the apps authenticate with the external
    identity provider), so consumers read ids from the URL route.

    Subclasses should override:
        - on_connect(): join groups / send the greeting
        - handle_message(msg_type, data): handle incoming messages
        - on_disconnect(close_code): release per-connection resources
    """

    async def connect(self):
        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({"type": "connection_established"})

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            for group in list(getattr(self, "joined_groups", ())):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for %s", self.channel_name)

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type") if isinstance(data, dict) else None
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Ride Event Handlers ----------------------
    # These handle group_send events from realtime.notifications

    async def ride_offer(self, event):
        """Sent to a driver when the ride is targeted at them."""
        await self.send_json({
            "type": "ride_offer",
            "ride_id": event.get("ride_id"),
            "ride": event.get("ride_data", {}),
            "expires_in": event.get("expires_in"),
        })

    async def ride_offer_withdrawn(self, event):
        """Sent to a driver whose offer was declined, timed out or cancelled."""
        await self.send_json({
            "type": "ride_offer_withdrawn",
            "ride_id": event.get("ride_id"),
            "reason": event.get("reason"),
            "message": event.get("message", ""),
        })

    async def _forward_ride_event(self, event):
        await self.send_json({
            "type": event["type"],
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "message": event.get("message", ""),
            "ride": event.get("ride_data", {}),
        })

    async def ride_accepted(self, event):
        """Sent to ride watchers when the targeted driver accepts."""
        await self._forward_ride_event(event)

    async def ride_started(self, event):
        await self._forward_ride_event(event)

    async def ride_completed(self, event):
        await self._forward_ride_event(event)

    async def ride_cancelled(self, event):
        await self._forward_ride_event(event)

    async def driver_requested(self, event):
        """Sent to ride watchers when the ride is targeted at a new driver."""
        await self.send_json({
            "type": "driver_requested",
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "driver": event.get("driver"),
        })

    async def no_drivers_available(self, event):
        """Sent when no drivers are available."""
        await self.send_json({
            "type": "no_drivers_available",
            "ride_id": event.get("ride_id"),
            "message": event.get("message", "No drivers available"),
        })
