"""
Live ETA polling.

Re-runs the quote for one origin/destination pair on a fixed interval and
pushes each fresh result to the consumer. Single-flight per poller: starting a
new request cancels the one in flight, and a result is applied only if it
belongs to the latest request. A late answer from a cancelled request is
dropped.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from .quote_engine import Location, Quote, QuoteEngine, QuoteFunction

logger = logging.getLogger(__name__)


class RealtimeETAPoller:
    """Polls the quote engine and hands results to ``on_update``."""

    def __init__(
        self,
        origin: Location,
        destination: Location,
        on_update: Callable[[Quote], Any],
        *,
        poll_seconds: Optional[float] = None,
        quote_fn: Optional[QuoteFunction] = None,
    ):
        self.origin = origin
        self.destination = destination
        self.poll_seconds = poll_seconds or settings.ETA_POLL_SECONDS
        self._on_update = on_update
        self._quote_fn = quote_fn or QuoteEngine().compute_quote

        self._token = 0
        self._inflight: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stopped = True

    @property
    def running(self) -> bool:
        return not self._stopped

    async def start(self) -> None:
        if self._loop_task is not None:
            return
        self._stopped = False
        self._loop_task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        self._stopped = True
        self._token += 1
        self._cancel_inflight()

        loop_task, self._loop_task = self._loop_task, None
        if loop_task is not None and loop_task is not asyncio.current_task():
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("ETA polling loop ended with an error")

    async def update_endpoints(self, origin: Location, destination: Location) -> None:
        """Swap endpoints and refresh right away if polling."""
        self.origin = origin
        self.destination = destination
        if self.running:
            await self.refresh()

    async def refresh(self) -> Optional[Quote]:
        """
        Issue one request. Returns the applied quote, or None when the result
        was superseded, cancelled, failed or could not be delivered.
        """
        self._token += 1
        token = self._token
        self._cancel_inflight()

        task = asyncio.ensure_future(self._fetch(self.origin, self.destination))
        self._inflight = task
        await asyncio.wait({task})

        if task.cancelled() or token != self._token:
            logger.debug("Discarding superseded ETA result (token %s)", token)
            return None

        error = task.exception()
        if error is not None:
            logger.warning("ETA refresh failed: %s", error)
            return None

        quote = task.result()
        try:
            result = self._on_update(quote)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("ETA update could not be delivered")
            return None
        return quote

    async def _fetch(self, origin: Location, destination: Location) -> Quote:
        return await sync_to_async(self._quote_fn, thread_sensitive=False)(origin, destination)

    async def _run(self) -> None:
        while not self._stopped:
            await self.refresh()
            await asyncio.sleep(self.poll_seconds)

    def _cancel_inflight(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
