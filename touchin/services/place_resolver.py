"""Grid-cached, debounced place labels in front of reverse geocoding."""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from typing import Awaitable, Callable, Dict, Optional, Protocol, Union

from loguru import logger

from touchin.core.errors import GeocodeError
from touchin.core.match_config import PLACE_CELL_DECIMALS, PLACE_MIN_INTERVAL_SECONDS

Publisher = Callable[[str], Union[None, Awaitable[None]]]


class ReverseGeocoder(Protocol):
    async def reverse(self, lat: float, lon: float) -> str: ...


def cell_key(lat: float, lon: float, decimals: int = PLACE_CELL_DECIMALS) -> str:
    """Grid cell key: coordinates rounded to ``decimals`` (3 ~ 100m)."""

    return f"{lat:.{decimals}f},{lon:.{decimals}f}"


class PlaceResolver:
    """Keeps the owner's current place label fresh without hammering the geocoder.

    - same cell as the last resolved one: no-op
    - cell already cached: reuse the cached label, no lookup
    - fewer than ``min_interval_s`` since the last lookup attempt: skip
    - lookup failure: label and cell cursor stay as they were so the next
      qualifying sample retries

    Calls are serialized in arrival order, so at most one lookup is in flight
    and a slow answer for a cell already left cannot overwrite a newer one.
    """

    def __init__(
        self,
        geocoder: ReverseGeocoder,
        publish: Optional[Publisher] = None,
        decimals: int = PLACE_CELL_DECIMALS,
        min_interval_s: float = PLACE_MIN_INTERVAL_SECONDS,
    ) -> None:
        self._geocoder = geocoder
        self._publish = publish
        self.decimals = decimals
        self.min_interval_s = min_interval_s

        self.label: Optional[str] = None
        self.lookups = 0
        self._cache: Dict[str, str] = {}
        self._last_cell: Optional[str] = None
        self._last_lookup_at = -math.inf
        self._lock = asyncio.Lock()

    @property
    def cache(self) -> Dict[str, str]:
        return dict(self._cache)

    @property
    def last_cell(self) -> Optional[str]:
        return self._last_cell

    async def resolve(self, lat: float, lon: float, now: Optional[float] = None) -> Optional[str]:
        """Current label after considering this coordinate. Never raises on lookup failure."""

        now = time.time() if now is None else now
        async with self._lock:
            return await self._resolve(lat, lon, now)

    async def _resolve(self, lat: float, lon: float, now: float) -> Optional[str]:
        key = cell_key(lat, lon, self.decimals)
        if key == self._last_cell:
            return self.label

        name = self._cache.get(key)
        if name is None:
            if now - self._last_lookup_at < self.min_interval_s:
                logger.debug(f"place lookup debounced for cell {key}")
                return self.label
            self._last_lookup_at = now
            self.lookups += 1
            try:
                name = await self._geocoder.reverse(lat, lon)
            except GeocodeError as exc:
                logger.warning(f"Reverse geocoding failed for cell {key}: {exc}")
                return self.label
            self._cache[key] = name

        self.label = name
        if self._publish is not None:
            try:
                result = self._publish(name)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                # cell stays unconfirmed, the next sample in this cell republishes from cache
                logger.warning(f"Publishing place failed for cell {key}: {exc}")
                return self.label

        self._last_cell = key
        return name
