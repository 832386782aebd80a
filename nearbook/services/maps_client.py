"""
Geodata clients: Google Maps (Geocoding + Distance Matrix) and Nominatim geocoding.

Lookups return None when the service answered but has no usable result for that
address pair. They raise GeodataUnavailableError when the service itself cannot be
used (network failure, timeout, 5xx, key refused, quota exhausted).
"""

import asyncio
import time
from urllib.parse import quote

import httpx

from nearbook.contracts.calendar_v1 import Coordinates
from nearbook.core.errors import GeodataUnavailableError
from nearbook.core.logger import logger

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GOOGLE_DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
GOOGLE_MAPS_DIR_URL = "https://www.google.com/maps/dir/"
GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/"

# Top-level statuses meaning the API refused service, not that the address is unknown
_SERVICE_REFUSED_STATUSES = frozenset(
    {"REQUEST_DENIED", "OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT", "UNKNOWN_ERROR"}
)


def directions_url(*stops: str) -> str | None:
    """Google Maps link through the given stops (search link for a single stop)."""
    cleaned = [s.strip() for s in stops if s and s.strip()]
    if not cleaned:
        return None
    if len(cleaned) == 1:
        return GOOGLE_MAPS_SEARCH_URL + quote(cleaned[0], safe="")
    return GOOGLE_MAPS_DIR_URL + "/".join(quote(s, safe="") for s in cleaned)


def parse_driving_km(data: dict, provider: str = "google_maps") -> float | None:
    """Kilometres from a one-pair Distance Matrix response, None when unusable."""
    status = data.get("status")
    if status in _SERVICE_REFUSED_STATUSES:
        raise GeodataUnavailableError(provider, f"distance matrix status {status}")
    if status != "OK":
        return None
    try:
        element = data["rows"][0]["elements"][0]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(element, dict) or element.get("status") != "OK":
        return None
    meters = (element.get("distance") or {}).get("value")
    if not isinstance(meters, (int, float)) or isinstance(meters, bool) or meters < 0:
        return None
    return meters / 1000.0


async def _get_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    params: dict[str, str],
    headers: dict[str, str] | None = None,
) -> object:
    t0 = time.monotonic()
    try:
        resp = await client.get(url, params=params, headers=headers)
    except httpx.TimeoutException as e:
        logger.external_call(provider, url, "timeout", time.monotonic() - t0)
        raise GeodataUnavailableError(provider, f"timed out: {e}") from e
    except httpx.TransportError as e:
        logger.external_call(provider, url, "transport_error", time.monotonic() - t0)
        raise GeodataUnavailableError(provider, f"unreachable: {e}") from e

    logger.external_call(provider, url, str(resp.status_code), time.monotonic() - t0)
    if resp.status_code >= 500 or resp.status_code in (401, 403, 429):
        raise GeodataUnavailableError(provider, f"HTTP {resp.status_code}: {resp.text[:200]}")
    if resp.status_code >= 400:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


class GoogleMapsClient:
    """Google Geocoding and Distance Matrix over a shared httpx.AsyncClient."""

    provider = "google_maps"

    def __init__(
        self,
        routing_api_key: str = "",
        geocoding_api_key: str = "",
        timeout: float = 8.0,
        max_connections: int = 8,
        client: httpx.AsyncClient | None = None,
    ):
        self._routing_key = routing_api_key
        self._geocoding_key = geocoding_api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, limits=httpx.Limits(max_connections=max_connections)
        )

    @property
    def has_routing(self) -> bool:
        return bool(self._routing_key)

    @property
    def has_geocoding(self) -> bool:
        return bool(self._geocoding_key)

    async def geocode(self, address: str) -> Coordinates | None:
        if not self._geocoding_key:
            raise GeodataUnavailableError(self.provider, "geocoding API key not configured")
        data = await _get_json(
            self._client,
            self.provider,
            GOOGLE_GEOCODE_URL,
            {"address": address, "key": self._geocoding_key},
        )
        if not isinstance(data, dict):
            return None
        status = data.get("status")
        if status in _SERVICE_REFUSED_STATUSES:
            raise GeodataUnavailableError(self.provider, f"geocode status {status}")
        results = data.get("results") or []
        if status != "OK" or not results:
            return None
        try:
            loc = results[0]["geometry"]["location"]
            return Coordinates(lat=loc["lat"], lng=loc["lng"])
        except (KeyError, TypeError, ValueError):
            return None

    async def distance_matrix(self, origin: str, destination: str) -> dict:
        """Raw Distance Matrix response for one origin/destination pair."""
        if not self._routing_key:
            raise GeodataUnavailableError(self.provider, "routing API key not configured")
        data = await _get_json(
            self._client,
            self.provider,
            GOOGLE_DISTANCE_MATRIX_URL,
            {
                "origins": origin,
                "destinations": destination,
                "mode": "driving",
                "units": "metric",
                "key": self._routing_key,
            },
        )
        return data if isinstance(data, dict) else {}

    async def driving_distance_km(self, origin: str, destination: str) -> float | None:
        return parse_driving_km(await self.distance_matrix(origin, destination), self.provider)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class NominatimGeocoder:
    """OpenStreetMap Nominatim search, throttled to one request per min_interval.

    The timeout covers each request from the moment its turn comes up, not the wait
    in the queue.
    """

    provider = "nominatim"

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "nearbook/0.1",
        timeout: float = 8.0,
        min_interval_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._user_agent = user_agent
        self._min_interval = max(0.0, min_interval_seconds)
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._throttle = asyncio.Lock()
        self._last_request = 0.0

    has_geocoding = True

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    async def _wait_turn(self) -> None:
        # Nominatim usage policy: at most 1 request per second
        async with self._throttle:
            wait = self._last_request + self._min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    async def geocode(self, address: str) -> Coordinates | None:
        await self._wait_turn()
        try:
            data = await asyncio.wait_for(
                _get_json(
                    self._client,
                    self.provider,
                    f"{self._base_url}/search",
                    {"q": address, "format": "json", "limit": "1"},
                    headers={"User-Agent": self._user_agent, "Accept": "application/json"},
                ),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise GeodataUnavailableError(self.provider, "timed out") from e
        if not isinstance(data, list) or not data:
            return None
        item = data[0]
        try:
            return Coordinates(lat=float(item["lat"]), lng=float(item["lon"]))
        except (KeyError, TypeError, ValueError):
            return None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
