"""Plain records passed between the proximity services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class Position:
    """A single own-location sample.

    Attributes:
        lat: Latitude in decimal degrees.
        lon: Longitude in decimal degrees.
        timestamp: Unix epoch seconds.
    """

    lat: float
    lon: float
    timestamp: float


@dataclass(frozen=True, slots=True)
class PeerSnapshot:
    """Read-only copy of another member's published state.

    Defaulting rules:
        - lat/lon missing: the peer cannot be located and is never nearby.
        - updated_at missing: treated as stale.
        - place missing: the peer has no label yet.
        - text missing: the peer has no message. Not an error.
    """

    id: str
    lat: float | None = None
    lon: float | None = None
    updated_at: float | None = None
    place: str | None = None
    text: str | None = None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None

    def is_stale(self, now: float, max_age_seconds: float) -> bool:
        if self.updated_at is None:
            return True
        return now - self.updated_at > max_age_seconds


@dataclass(frozen=True, slots=True)
class NearbyCandidate:
    peer_id: str
    lat: float
    lon: float
    distance_m: float


@dataclass(frozen=True, slots=True)
class EligiblePeer:
    """A peer that has been continuously near for at least the dwell threshold."""

    peer_id: str
    distance_m: float
    near_since: float

    def dwell_seconds(self, now: float) -> float:
        return max(0.0, now - self.near_since)


def epoch_seconds(dt: datetime | None) -> float | None:
    """Epoch seconds of a DB timestamp. Naive values (SQLite CURRENT_TIMESTAMP) are UTC."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
