"""
Async client for the Google Directions web service.

The client only speaks the wire protocol: it returns the provider ``status``
and the raw payload, and leaves the interpretation of ``ZERO_RESULTS`` and
friends to the route composer.
"""

import logging
from collections import namedtuple
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from app.core.exceptions import UpstreamFailureError
from app.core.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

LatLng = namedtuple("LatLng", ["latitude", "longitude"])


def format_latlng(point: LatLng) -> str:
    return f"{point.latitude},{point.longitude}"


class DirectionsClient:

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.api_key = self.settings.GOOGLE_MAPS_API_KEY
        self.url = self.settings.DIRECTIONS_API_URL
        self._client = http_client
        self._owns_client = http_client is None

        if not self.api_key:
            logger.warning("Google Maps API key is not configured, route requests will fail")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.ROUTE_PROVIDER_TIMEOUT_SECONDS
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_params(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng],
        optimize_waypoints: bool,
        mode: str,
    ) -> Dict[str, Any]:
        params = {
            "origin": format_latlng(origin),
            "destination": format_latlng(destination),
            "mode": mode.lower(),
            "key": self.api_key,
        }
        if waypoints:
            parts = [format_latlng(w) for w in waypoints]
            if optimize_waypoints:
                parts.insert(0, "optimize:true")
            params["waypoints"] = "|".join(parts)
        return params

    async def route(
        self,
        origin: LatLng,
        destination: LatLng,
        waypoints: Sequence[LatLng] = (),
        optimize_waypoints: bool = False,
        mode: str = "DRIVING",
    ) -> Tuple[str, Dict[str, Any]]:
        """Request one route and return ``(status, payload)``.

        Raises:
            UpstreamFailureError: the provider could not be reached, timed out,
                answered a non-200 HTTP status, or returned a body that is not JSON.
        """
        if not self.api_key:
            raise UpstreamFailureError(
                "Route provider is not configured",
                provider_status="REQUEST_DENIED",
            )

        params = self.build_params(origin, destination, waypoints, optimize_waypoints, mode)

        try:
            response = await self._get_client().get(self.url, params=params)
        except httpx.TimeoutException as exc:
            logger.error(f"Directions request timed out: {exc}")
            raise UpstreamFailureError("Route provider timed out", provider_status="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Directions request failed: {exc}")
            raise UpstreamFailureError("Route provider unavailable") from exc

        if response.status_code != 200:
            logger.error(f"Directions error {response.status_code}: {response.text[:200]}")
            raise UpstreamFailureError(
                "Route provider returned an error",
                provider_status=f"HTTP_{response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamFailureError("Route provider returned an invalid response") from exc

        status = payload.get("status", "UNKNOWN_ERROR")
        if status != "OK":
            logger.info(f"Directions status {status}: {payload.get('error_message', '')}")
        return status, payload
