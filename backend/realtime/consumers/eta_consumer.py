"""Live ETA WebSocket consumer: one poller per connection."""

import logging
from datetime import timedelta
from typing import Dict, Any, Optional

from .base import BaseConsumer
from rides.serializers import LocationSerializer
from services.quoting.quote_engine import Location, Quote
from services.quoting.realtime_eta import RealtimeETAPoller

logger = logging.getLogger(__name__)

MIN_POLL_SECONDS = 5


class ETAConsumer(BaseConsumer):
    """
    Pushes ``eta_update`` messages for one origin/destination pair.

    A new ``eta_subscribe`` swaps the endpoints on the running poller, which
    cancels any request still in flight for the old pair.
    """

    async def on_connect(self):
        self.poller: Optional[RealtimeETAPoller] = None
        await self.send_json({"type": "connection_established"})

    async def on_disconnect(self, close_code):
        await self._stop_poller()

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "eta_subscribe":
            await self._handle_subscribe(data)
        elif msg_type == "eta_unsubscribe":
            await self._stop_poller()
            await self.send_success("eta_unsubscribed")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    async def _handle_subscribe(self, data: Dict[str, Any]):
        origin = LocationSerializer(data=data.get("origin") or {})
        destination = LocationSerializer(data=data.get("destination") or {})
        if not (origin.is_valid() and destination.is_valid()):
            await self.send_json({
                "type": "error",
                "message": "eta_subscribe requires a valid origin and destination",
                "errors": {"origin": origin.errors, "destination": destination.errors},
            })
            return

        origin_loc = Location.from_payload(origin.validated_data)
        destination_loc = Location.from_payload(destination.validated_data)

        if self.poller is not None:
            await self.poller.update_endpoints(origin_loc, destination_loc)
            return

        poll_seconds = data.get("poll_seconds")
        try:
            poll_seconds = max(MIN_POLL_SECONDS, float(poll_seconds)) if poll_seconds else None
        except (TypeError, ValueError):
            poll_seconds = None

        self.poller = RealtimeETAPoller(
            origin_loc,
            destination_loc,
            self._push_update,
            poll_seconds=poll_seconds,
        )
        await self.poller.start()
        await self.send_success("eta_subscribed", poll_seconds=self.poller.poll_seconds)

    async def _push_update(self, quote: Quote):
        payload = quote.as_payload()
        if quote.success:
            arrival = quote.computed_at + timedelta(seconds=quote.drive_seconds or 0)
            payload["arrivalAt"] = int(arrival.timestamp() * 1000)
        await self.send_json({"type": "eta_update", **payload})

    async def _stop_poller(self):
        poller, self.poller = getattr(self, "poller", None), None
        if poller is not None:
            await poller.stop()
