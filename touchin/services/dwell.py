"""Dwell detection: continuous peer contact and "did I stay put" windows."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List

from loguru import logger

from touchin.core.match_config import (
    DWELL_THRESHOLD_SECONDS,
    PEER_STALE_SECONDS,
    PROXIMITY_RADIUS_METERS,
    SELF_WINDOW_MIN_SECONDS,
    SELF_WINDOW_RADIUS_METERS,
    SELF_WINDOW_SPAN_SECONDS,
)
from touchin.geo.distance import haversine_m
from touchin.services.records import EligiblePeer, PeerSnapshot, Position


@dataclass
class DwellParams:
    radius_m: float = PROXIMITY_RADIUS_METERS
    dwell_threshold_s: float = DWELL_THRESHOLD_SECONDS
    stale_after_s: float = PEER_STALE_SECONDS


class DwellTracker:
    """Per-peer ``near_since`` bookkeeping.

    A peer gets a ``near_since`` stamp the first update it is within the radius
    while the owner is slow, and loses it as soon as either condition fails or
    its data goes stale. Eligibility is re-evaluated on every update.
    """

    def __init__(self, params: DwellParams | None = None) -> None:
        self.params = params or DwellParams()
        self._near_since: Dict[str, float] = {}

    def near_since(self, peer_id: str) -> float | None:
        return self._near_since.get(peer_id)

    def clear(self) -> None:
        self._near_since.clear()

    def update(
        self,
        pos: Position,
        peers: Iterable[PeerSnapshot],
        is_slow: bool,
        self_id: str | None = None,
    ) -> List[EligiblePeer]:
        now = pos.timestamp
        eligible: List[EligiblePeer] = []

        for peer in peers:
            if peer.id == self_id:
                continue

            if not peer.has_position or peer.is_stale(now, self.params.stale_after_s):
                self._near_since.pop(peer.id, None)
                continue

            distance = haversine_m(pos.lat, pos.lon, peer.lat, peer.lon)
            if distance > self.params.radius_m or not is_slow:
                self._near_since.pop(peer.id, None)
                continue

            since = self._near_since.setdefault(peer.id, now)
            if now - since >= self.params.dwell_threshold_s:
                eligible.append(EligiblePeer(peer_id=peer.id, distance_m=distance, near_since=since))

        if eligible:
            logger.debug(f"Dwell eligible peers: {[p.peer_id for p in eligible]}")
        return eligible


class SelfWindow:
    """Trailing buffer of the owner's own samples.

    Entries older than ``span_s`` are dropped on every insert. ``stayed``
    holds when every pair of buffered samples is within ``radius_m`` and the
    buffer covers at least ``min_duration_s``.
    """

    def __init__(
        self,
        radius_m: float = SELF_WINDOW_RADIUS_METERS,
        min_duration_s: float = SELF_WINDOW_MIN_SECONDS,
        span_s: float = SELF_WINDOW_SPAN_SECONDS,
    ) -> None:
        if span_s < min_duration_s:
            raise ValueError("span_s must be >= min_duration_s")
        self.radius_m = radius_m
        self.min_duration_s = min_duration_s
        self.span_s = span_s
        self._points: Deque[Position] = deque()

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> List[Position]:
        return list(self._points)

    def add(self, pos: Position) -> bool:
        now = pos.timestamp
        kept = [p for p in self._points if now - p.timestamp <= self.span_s]
        kept.append(pos)
        kept.sort(key=lambda p: p.timestamp)
        self._points = deque(kept)
        return self.stayed()

    def stayed(self) -> bool:
        return stayed_within(list(self._points), self.radius_m, self.min_duration_s)


def stayed_within(points: List[Position], radius_m: float, min_duration_s: float) -> bool:
    """Max pairwise distance <= radius and time span >= min duration. O(n^2)."""

    if len(points) < 2:
        return False
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            a, b = points[i], points[j]
            if haversine_m(a.lat, a.lon, b.lat, b.lon) > radius_m:
                return False
    span = max(p.timestamp for p in points) - min(p.timestamp for p in points)
    return span >= min_duration_s
