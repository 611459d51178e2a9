from __future__ import annotations

from typing import Dict, List

from loguru import logger
from sqlalchemy.orm import Session

from touchin.core.config import DEFAULT_ROOM_ID
from touchin.core.match_config import DEFAULT_NEARBY_RADIUS_METERS
from touchin.geo import geohash
from touchin.geo.distance import haversine_m
from touchin.models.presence import Presence
from touchin.services.records import NearbyCandidate


def get_nearby(
    db: Session,
    user_id: str,
    lat: float,
    lon: float,
    radius_m: float = DEFAULT_NEARBY_RADIUS_METERS,
    room_id: str = DEFAULT_ROOM_ID,
) -> List[NearbyCandidate]:
    """Members of ``room_id`` within ``radius_m`` of the point, nearest first.

    One range query per geohash range, then every hit is re-checked by
    great-circle distance since the ranges over-cover the circle.
    """
    ranges = geohash.ranges_for(lat, lon, radius_m)
    found: Dict[str, NearbyCandidate] = {}
    scanned = 0

    for low, high in ranges:
        rows = (
            db.query(Presence)
            .filter(
                Presence.room_id == room_id,
                Presence.geohash >= low,
                Presence.geohash <= high,
            )
            .order_by(Presence.geohash.asc())
            .all()
        )
        scanned += len(rows)

        for r in rows:
            if r.user_id == user_id or r.user_id in found:
                continue
            if r.lat is None or r.lon is None:
                continue
            distance = haversine_m(lat, lon, r.lat, r.lon)
            if distance <= radius_m:
                found[r.user_id] = NearbyCandidate(
                    peer_id=r.user_id,
                    lat=float(r.lat),
                    lon=float(r.lon),
                    distance_m=distance,
                )

    logger.debug(f"nearby user={user_id} ranges={len(ranges)} scanned={scanned} hits={len(found)}")
    return sorted(found.values(), key=lambda c: c.distance_m)
