"""Throttled own-location sampling with speed estimation."""

from __future__ import annotations

from dataclasses import dataclass

from touchin.core.match_config import (
    SAMPLE_MIN_DISTANCE_METERS,
    SAMPLE_MIN_INTERVAL_SECONDS,
    SLOW_SPEED_MPS,
)
from touchin.geo.distance import haversine_m
from touchin.schemas.enums import SpeedClass
from touchin.services.records import Position


@dataclass
class SamplerParams:
    min_distance_m: float = SAMPLE_MIN_DISTANCE_METERS
    min_interval_s: float = SAMPLE_MIN_INTERVAL_SECONDS
    slow_speed_mps: float = SLOW_SPEED_MPS


class LocationSampler:
    """Filters a raw position stream and tracks the owner's speed.

    A sample is accepted when it moved at least ``min_distance_m`` or at least
    ``min_interval_s`` passed since the last accepted one. Speed is estimated
    between consecutive accepted samples and stays undefined until two exist.
    """

    def __init__(self, params: SamplerParams | None = None) -> None:
        self.params = params or SamplerParams()
        self._last: Position | None = None
        self._speed_mps: float | None = None

    @property
    def last(self) -> Position | None:
        return self._last

    @property
    def speed_mps(self) -> float | None:
        return self._speed_mps

    @property
    def speed_class(self) -> SpeedClass:
        if self._speed_mps is None:
            return SpeedClass.unknown
        if self._speed_mps <= self.params.slow_speed_mps:
            return SpeedClass.slow
        return SpeedClass.fast

    @property
    def is_slow(self) -> bool:
        return self.speed_class is SpeedClass.slow

    def should_accept(self, pos: Position) -> bool:
        prev = self._last
        if prev is None:
            return True
        if pos.timestamp - prev.timestamp >= self.params.min_interval_s:
            return True
        return haversine_m(prev.lat, prev.lon, pos.lat, pos.lon) >= self.params.min_distance_m

    def accept(self, pos: Position) -> bool:
        """Feed one raw sample. Returns True when it passed the throttle."""

        if not self.should_accept(pos):
            return False

        prev = self._last
        if prev is not None:
            elapsed = pos.timestamp - prev.timestamp
            # out-of-order or duplicate timestamps keep the previous estimate
            if elapsed > 0:
                self._speed_mps = haversine_m(prev.lat, prev.lon, pos.lat, pos.lon) / elapsed
        self._last = pos
        return True
