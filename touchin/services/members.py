from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from touchin.core.config import DEFAULT_ROOM_ID
from touchin.geo import geohash
from touchin.models.presence import Presence
from touchin.services.records import PeerSnapshot, epoch_seconds


def _get_or_create(db: Session, user_id: str, room_id: str) -> Presence:
    row = db.get(Presence, (room_id, user_id))
    if row is None:
        row = Presence(room_id=room_id, user_id=user_id)
        db.add(row)
    return row


def to_snapshot(row: Presence) -> PeerSnapshot:
    return PeerSnapshot(
        id=row.user_id,
        lat=row.lat,
        lon=row.lon,
        updated_at=epoch_seconds(row.updated_at),
        place=row.place,
        text=row.text,
    )


def publish_location(
    db: Session,
    user_id: str,
    lat: float,
    lon: float,
    room_id: str = DEFAULT_ROOM_ID,
    text: Optional[str] = None,
    at: Optional[datetime] = None,
) -> Presence:
    """Merge own position into the room; ``text`` is only overwritten when given."""

    row = _get_or_create(db, user_id, room_id)
    row.lat = lat
    row.lon = lon
    row.geohash = geohash.encode(lat, lon)
    if text is not None:
        row.text = text
    row.updated_at = at if at is not None else func.now()
    db.commit()
    db.refresh(row)
    logger.debug(f"upload user={user_id} room={room_id} lat={lat:.6f} lon={lon:.6f}")
    return row


def set_place(db: Session, user_id: str, place: str, room_id: str = DEFAULT_ROOM_ID) -> None:
    row = _get_or_create(db, user_id, room_id)
    row.place = place
    db.commit()


def set_text(db: Session, user_id: str, text: str, room_id: str = DEFAULT_ROOM_ID) -> None:
    row = _get_or_create(db, user_id, room_id)
    row.text = text
    db.commit()


def list_members(db: Session, room_id: str = DEFAULT_ROOM_ID) -> List[PeerSnapshot]:
    rows = (
        db.query(Presence)
        .filter(Presence.room_id == room_id)
        .order_by(Presence.updated_at.desc())
        .all()
    )
    return [to_snapshot(r) for r in rows]
