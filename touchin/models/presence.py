from sqlalchemy import Column, String, Float, DateTime, Index
from sqlalchemy.sql import func

from touchin.core.db import Base

class Presence(Base):
    """Published state of one member in a room (what peers read)."""

    __tablename__ = "presence"

    room_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True, index=True)

    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    geohash = Column(String, nullable=True)

    place = Column(String, nullable=True)
    text = Column(String, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=True, server_default=func.now())

    __table_args__ = (
        Index("idx_presence_room_geohash", "room_id", "geohash"),
        Index("idx_presence_updated_at", "updated_at"),
    )
