"""Best-effort address geocoding."""

import logging
from typing import Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from geopy.exc import GeopyError
from geopy.geocoders import GoogleV3

from app.core.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class Geocoder:
    """Wraps geopy's GoogleV3 geocoder; every failure degrades to ``None``."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._geocoder = None
        if self.settings.GEOCODING_ENABLED and self.settings.GOOGLE_MAPS_API_KEY:
            self._geocoder = GoogleV3(
                api_key=self.settings.GOOGLE_MAPS_API_KEY,
                timeout=self.settings.GEOCODING_TIMEOUT_SECONDS,
            )

    @property
    def enabled(self) -> bool:
        return self._geocoder is not None

    async def locate(self, address: Optional[str], city: Optional[str] = None) -> Optional[Tuple[float, float]]:
        if not self.enabled or not address or not address.strip():
            return None

        query = address.strip()
        if city and city.strip() and city.strip().lower() not in query.lower():
            query = f"{query}, {city.strip()}"

        try:
            location = await run_in_threadpool(self._geocoder.geocode, query)
        except GeopyError as e:
            logger.warning(f"Geocoding failed for {query!r}: {e}")
            return None

        if location is None:
            logger.info(f"No geocoding result for {query!r}")
            return None
        return location.latitude, location.longitude
