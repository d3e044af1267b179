import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import settings
from .models import Place, ReverseGeocodeResult

logger = logging.getLogger(__name__)


class GeocodingUnavailable(RuntimeError):
    """The geocoding service failed, timed out or returned an unusable payload."""


class Geocoder(Protocol):
    async def reverse_geocode(
        self, latitude: float, longitude: float
    ) -> Optional[ReverseGeocodeResult]:
        ...


def fallback_location_name(latitude: float, longitude: float) -> str:
    """Coordinate string used when no place name can be resolved."""
    return f"{latitude:.4f}, {longitude:.4f}"


def _clean_location_name(display_name: str, address: Dict[str, Any]) -> ReverseGeocodeResult:
    """
    Builds a short "City, State, Country" name out of a Nominatim address.

    Falls back to the full display_name when city or country is missing.
    """
    city = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or address.get("county")
    )
    country = address.get("country")
    state = address.get("state")

    location_name = display_name
    if city and country:
        location_name = f"{city}, {country}"
        if state and state != city and state != country:
            location_name = f"{city}, {state}, {country}"

    return ReverseGeocodeResult(
        display_name=location_name,
        country=country,
        city=city,
        state=state,
    )


def format_place(place: Dict[str, Any]) -> Place:
    """Converts a raw Nominatim search hit into a Place."""
    display_name = place["display_name"]
    return Place(
        name=place.get("name") or display_name.split(",")[0],
        address=display_name,
        latitude=float(place["lat"]),
        longitude=float(place["lon"]),
        place_id=int(place["place_id"]),
    )


class NominatimGeocoder:
    """
    Async client for the OpenStreetMap Nominatim API.

    Transport errors are retried with exponential backoff. Anything that still
    fails is raised as GeocodingUnavailable.

    Usage:
        async with NominatimGeocoder() as geocoder:
            result = await geocoder.reverse_geocode(37.7749, -122.4194)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        zoom: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_wait_seconds: float = 1.0,
        min_interval_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.NOMINATIM_BASE_URL).rstrip("/")
        self.user_agent = user_agent or settings.GEOCODER_USER_AGENT
        self.timeout = timeout if timeout is not None else settings.GEOCODE_TIMEOUT_SECONDS
        self.zoom = zoom if zoom is not None else settings.GEOCODE_ZOOM
        self.max_retries = max(1, max_retries if max_retries is not None else settings.GEOCODE_MAX_RETRIES)
        self.retry_wait_seconds = retry_wait_seconds
        self.min_interval_seconds = (
            min_interval_seconds if min_interval_seconds is not None else settings.GEOCODE_MIN_INTERVAL_SECONDS
        )
        self._throttle_lock: Optional[asyncio.Lock] = None
        self._last_request_at: Optional[float] = None

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def __aenter__(self) -> "NominatimGeocoder":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _wait_for_slot(self) -> None:
        # Requests, retries included, start at least min_interval_seconds apart
        if self.min_interval_seconds <= 0:
            return
        if self._throttle_lock is None:
            self._throttle_lock = asyncio.Lock()

        async with self._throttle_lock:
            if self._last_request_at is not None:
                delay = self._last_request_at + self.min_interval_seconds - time.monotonic()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_request_at = time.monotonic()

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        url = f"{self.base_url}{path}"

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self.retry_wait_seconds, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    await self._wait_for_slot()
                    response = await self._client.get(url, params=params, headers=headers)
                    response.raise_for_status()
                    return response.json()
        except httpx.HTTPStatusError as e:
            raise GeocodingUnavailable(
                f"Nominatim {path} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise GeocodingUnavailable(f"Nominatim {path} request failed: {e}") from e
        except ValueError as e:
            raise GeocodingUnavailable(f"Nominatim {path} returned invalid JSON: {e}") from e

    async def reverse_geocode(self, latitude: float, longitude: float) -> ReverseGeocodeResult:
        """
        Resolves coordinates to a human-readable place name.

        Raises:
            GeocodingUnavailable: if the service fails or the payload has no name.
        """
        data = await self._get(
            "/reverse",
            {
                "lat": latitude,
                "lon": longitude,
                "format": "json",
                "zoom": self.zoom,
                "addressdetails": 1,
            },
        )

        if not isinstance(data, dict) or "error" in data:
            error = data.get("error") if isinstance(data, dict) else data
            raise GeocodingUnavailable(f"Nominatim reverse lookup failed: {error}")

        display_name = data.get("display_name")
        if not display_name:
            raise GeocodingUnavailable(
                f"Nominatim returned no name for ({latitude}, {longitude})"
            )

        result = _clean_location_name(display_name, data.get("address") or {})
        logger.debug(f"Reverse geocoded ({latitude}, {longitude}) -> {result.display_name}")
        return result

    async def geocode(self, location_name: str) -> Optional[Tuple[float, float]]:
        """Forward geocodes a place name to (latitude, longitude), or None if unknown."""
        data = await self._get(
            "/search",
            {"q": location_name, "format": "json", "limit": 1},
        )

        if not isinstance(data, list):
            raise GeocodingUnavailable(f"Nominatim search failed: {data}")
        if not data:
            return None

        try:
            return float(data[0]["lat"]), float(data[0]["lon"])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingUnavailable(f"Nominatim search returned a malformed result: {e}") from e

    async def search_places(self, query: str, limit: int = 10) -> List[Place]:
        """Place autocomplete. Queries shorter than two characters are not sent."""
        if not query or len(query) < 2:
            return []

        data = await self._get(
            "/search",
            {"q": query, "format": "json", "limit": limit},
        )

        if not isinstance(data, list):
            raise GeocodingUnavailable(f"Nominatim search failed: {data}")

        places = []
        for item in data:
            try:
                places.append(format_place(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Nominatim search result: {e}")
        return places

    async def extract_country_and_city(
        self, latitude: float, longitude: float
    ) -> Dict[str, Optional[str]]:
        """Country and city for a coordinate pair, empty dict if the lookup fails."""
        try:
            result = await self.reverse_geocode(latitude, longitude)
        except GeocodingUnavailable as e:
            logger.warning(f"Could not extract country and city: {e}")
            return {}

        return {"country": result.country, "city": result.city}
