"""Address geocoding and driving distance lookup.

Failures are returned as results with ``success=False`` and an error message;
the mileage calculator is only used after a successful lookup. No retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Protocol, Tuple

import httpx


logger = logging.getLogger(__name__)

GOOGLE_MAPS_BASE_URL = "https://maps.googleapis.com/maps/api"
PLACEHOLDER_API_KEYS = {"", "DEIN_API_KEY_HIER"}


class DistanceServiceConfigError(RuntimeError):
    """Raised when the routing provider is not configured."""


# -----------------------------
# Data contracts
# -----------------------------


@dataclass(frozen=True)
class GeoLocation:
    display_name: str
    lat: float
    lon: float
    place_type: str = "address"
    place_id: Optional[str] = None


@dataclass(frozen=True)
class GeocodeResult:
    success: bool
    results: Tuple[GeoLocation, ...] = field(default_factory=tuple)
    error: Optional[str] = None


@dataclass(frozen=True)
class RouteResult:
    success: bool
    distance_km: Optional[Decimal] = None
    duration_minutes: Optional[int] = None
    start: Optional[GeoLocation] = None
    end: Optional[GeoLocation] = None
    error: Optional[str] = None

    @property
    def distance_text(self) -> Optional[str]:
        if self.distance_km is None:
            return None
        return f"{self.distance_km} km"

    @property
    def duration_text(self) -> Optional[str]:
        if self.duration_minutes is None:
            return None
        return format_duration(self.duration_minutes)


def failed_route(error: str) -> RouteResult:
    return RouteResult(success=False, error=error)


# -----------------------------
# Provider abstraction
# -----------------------------


class RoutingProvider(Protocol):
    """Common interface for geocoding/routing backends."""

    async def geocode(self, address: str) -> GeocodeResult:
        ...

    async def route(self, start: GeoLocation, end: GeoLocation) -> RouteResult:
        ...


class GoogleMapsRoutingProvider:
    """Google Geocoding API + Directions API."""

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = GOOGLE_MAPS_BASE_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout_seconds = timeout_seconds

    def _require_api_key(self) -> str:
        if self.api_key in PLACEHOLDER_API_KEYS:
            raise DistanceServiceConfigError(
                "Google Maps API-Key nicht konfiguriert (GOOGLE_MAPS_API_KEY)."
            )
        return self.api_key

    async def _get_json(self, path: str, params: Dict[str, str]) -> Dict:
        url = f"{self.base_url}/{path}"
        if self._client is not None:
            response = await self._client.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def geocode(self, address: str) -> GeocodeResult:
        params = {
            "address": address,
            "language": "de",
            "region": "de",
            "key": self._require_api_key(),
        }
        try:
            data = await self._get_json("geocode/json", params)
        except httpx.HTTPStatusError as exc:
            logger.warning("Geocoding failed with HTTP %s", exc.response.status_code)
            return GeocodeResult(
                success=False, error=f"Geocoding fehlgeschlagen: {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            logger.warning("Geocoding request failed: %s", exc)
            return GeocodeResult(success=False, error=str(exc))

        status = data.get("status")
        results = data.get("results") or []
        if status == "ZERO_RESULTS" or (status == "OK" and not results):
            return GeocodeResult(success=False, error="Adresse nicht gefunden")
        if status == "REQUEST_DENIED":
            return GeocodeResult(
                success=False, error="API-Key ungültig oder Geocoding API nicht aktiviert."
            )
        if status == "OVER_QUERY_LIMIT":
            return GeocodeResult(success=False, error="API-Kontingent überschritten.")
        if status != "OK":
            return GeocodeResult(success=False, error=f"Google Maps Fehler: {status}")

        return GeocodeResult(
            success=True,
            results=tuple(
                GeoLocation(
                    display_name=item["formatted_address"],
                    lat=item["geometry"]["location"]["lat"],
                    lon=item["geometry"]["location"]["lng"],
                    place_type=(item.get("types") or ["address"])[0],
                    place_id=item.get("place_id"),
                )
                for item in results
            ),
        )

    async def route(self, start: GeoLocation, end: GeoLocation) -> RouteResult:
        params = {
            "origin": f"{start.lat},{start.lon}",
            "destination": f"{end.lat},{end.lon}",
            "mode": "driving",
            "language": "de",
            "key": self._require_api_key(),
        }
        try:
            data = await self._get_json("directions/json", params)
        except httpx.HTTPStatusError as exc:
            logger.warning("Directions failed with HTTP %s", exc.response.status_code)
            return failed_route(f"Routenberechnung fehlgeschlagen: {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("Directions request failed: %s", exc)
            return failed_route(str(exc))

        status = data.get("status")
        routes = data.get("routes") or []
        if status == "ZERO_RESULTS" or (status == "OK" and not routes):
            return failed_route("Keine Route gefunden")
        if status == "REQUEST_DENIED":
            return failed_route("API-Key ungültig oder Directions API nicht aktiviert.")
        if status != "OK":
            return failed_route(f"Google Maps Fehler: {status}")

        leg = routes[0]["legs"][0]
        meters = Decimal(str(leg["distance"]["value"]))
        seconds = Decimal(str(leg["duration"]["value"]))
        return RouteResult(
            success=True,
            distance_km=round(meters / 1000, 1),
            duration_minutes=int(round(seconds / 60)),
            start=start,
            end=end,
        )


class StaticRoutingProvider:
    """Provider with fixed locations and distances, for tests and offline use."""

    def __init__(
        self,
        locations: Dict[str, GeoLocation],
        distances: Dict[Tuple[str, str], Tuple[Decimal, int]],
    ) -> None:
        self.locations = locations
        self.distances = distances

    async def geocode(self, address: str) -> GeocodeResult:
        location = self.locations.get(address)
        if location is None:
            return GeocodeResult(success=False, error="Adresse nicht gefunden")
        return GeocodeResult(success=True, results=(location,))

    async def route(self, start: GeoLocation, end: GeoLocation) -> RouteResult:
        key = (start.display_name, end.display_name)
        if key not in self.distances:
            return failed_route("Keine Route gefunden")
        distance_km, minutes = self.distances[key]
        return RouteResult(
            success=True,
            distance_km=Decimal(distance_km),
            duration_minutes=minutes,
            start=start,
            end=end,
        )


# -----------------------------
# Workflow
# -----------------------------


async def calculate_distance_between_addresses(
    provider: RoutingProvider, start_address: str, end_address: str
) -> RouteResult:
    """Geocode both addresses and compute the one-way driving route."""
    start_result = await provider.geocode(start_address)
    if not start_result.success:
        return failed_route(f"Startadresse: {start_result.error}")

    end_result = await provider.geocode(end_address)
    if not end_result.success:
        return failed_route(f"Zieladresse: {end_result.error}")

    route = await provider.route(start_result.results[0], end_result.results[0])
    if not route.success:
        logger.warning("No route between %r and %r: %s", start_address, end_address, route.error)
    return route


def format_duration(minutes: float) -> str:
    hours = int(minutes // 60)
    mins = round(minutes % 60)
    if hours == 0:
        return f"{mins} Min."
    if mins == 0:
        return f"{hours} Std."
    return f"{hours} Std. {mins} Min."


__all__ = [
    "DistanceServiceConfigError",
    "GeoLocation",
    "GeocodeResult",
    "RouteResult",
    "RoutingProvider",
    "GoogleMapsRoutingProvider",
    "StaticRoutingProvider",
    "calculate_distance_between_addresses",
    "format_duration",
]
