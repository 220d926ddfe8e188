"""
Directions / geocoding provider client.

Sole responsibility: talk to the Google Directions and Geocoding web services
over HTTP and hand back the decoded JSON. No quoting rules live here.
"""

import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class DirectionsError(Exception):
    """Provider could not be reached or answered with garbage."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DirectionsClient:
    """
    Thin HTTP client for the directions provider.

    Locations are passed pre-formatted: ``place_id:<id>``, a free-text address,
    or ``lat,lng``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.DIRECTIONS_API_KEY
        self.base_url = (base_url or settings.DIRECTIONS_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.DIRECTIONS_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise DirectionsError("MISSING_API_KEY")

        try:
            response = self.session.get(
                f"{self.base_url}/{path}",
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.Timeout:
            raise DirectionsError("PROVIDER_TIMEOUT") from None
        except requests.RequestException as e:
            logger.warning("Directions provider request to %s failed: %s", path, e)
            raise DirectionsError("PROVIDER_UNAVAILABLE") from e
        except ValueError as e:
            raise DirectionsError("INVALID_PROVIDER_RESPONSE") from e

    def directions(self, origin: str, destination: str, traffic_model: str = "best_guess") -> Dict[str, Any]:
        """Driving directions departing now, with traffic-aware duration."""
        return self._get(
            "directions/json",
            {
                "origin": origin,
                "destination": destination,
                "mode": "driving",
                "departure_time": "now",
                "traffic_model": traffic_model,
            },
        )

    def geocode_place_id(self, address: str) -> Optional[str]:
        """Resolve a free-text address to the provider's place reference."""
        data = self._get("geocode/json", {"address": address})
        results = data.get("results") or []
        if not results:
            logger.info("Geocoding returned no result for %r (status=%s)", address, data.get("status"))
            return None
        return results[0].get("place_id")
