"""Reverse geocoding against OpenStreetMap Nominatim.

Public Nominatim is rate-limited: callers are expected to debounce
(see PlaceResolver) and to send a descriptive User-Agent.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from touchin.core.config import (
    NOMINATIM_EMAIL,
    NOMINATIM_LANGUAGE,
    NOMINATIM_TIMEOUT_SECONDS,
    NOMINATIM_URL,
    NOMINATIM_USER_AGENT,
)
from touchin.core.errors import GeocodeError
from touchin.core.match_config import PLACE_UNKNOWN_LABEL

# Most specific first: station, venue, then administrative areas
ADDRESS_PRIORITY = (
    "railway",
    "amenity",
    "shop",
    "tourism",
    "building",
    "neighbourhood",
    "suburb",
    "village",
    "town",
    "city",
    "city_district",
    "municipality",
    "county",
)


def pick_place_name(address: Dict[str, Any], fallback: str = PLACE_UNKNOWN_LABEL) -> str:
    for field in ADDRESS_PRIORITY:
        value = address.get(field)
        if value:
            return str(value)
    return fallback


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = NOMINATIM_URL,
        user_agent: str = NOMINATIM_USER_AGENT,
        language: str = NOMINATIM_LANGUAGE,
        email: str = NOMINATIM_EMAIL,
        timeout_seconds: float = NOMINATIM_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url
        self.user_agent = user_agent
        self.language = language
        self.email = email
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _params(self, lat: float, lon: float) -> Dict[str, str]:
        params = {
            "format": "jsonv2",
            "lat": f"{lat:.8f}",
            "lon": f"{lon:.8f}",
            "accept-language": self.language,
        }
        if self.email:
            params["email"] = self.email
        return params

    async def _get(self, client: httpx.AsyncClient, lat: float, lon: float) -> httpx.Response:
        return await client.get(
            self.base_url,
            params=self._params(lat, lon),
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
        )

    async def reverse(self, lat: float, lon: float) -> str:
        """Place name for a coordinate. Raises GeocodeError on any failure."""

        try:
            if self._client is not None:
                resp = await self._get(self._client, lat, lon)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    resp = await self._get(client, lat, lon)
        except httpx.HTTPError as exc:
            raise GeocodeError(f"reverse geocode request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise GeocodeError(f"reverse geocode failed: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise GeocodeError("reverse geocode returned non-JSON response") from exc

        address = data.get("address") if isinstance(data, dict) else None
        name = pick_place_name(address or {})
        logger.debug(f"reverse geocode ({lat:.5f},{lon:.5f}) -> {name}")
        return name
