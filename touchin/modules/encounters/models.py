from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from touchin.core.db import Base


class UserCounter(Base):
    __tablename__ = "user_counters"

    user_id = Column(String, primary_key=True)
    today_connections = Column(Integer, nullable=False, default=0)
    total_connections = Column(Integer, nullable=False, default=0)
    # YYYY-MM-DD, device local
    last_encounter_date = Column(String, nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class PeerRelation(Base):
    __tablename__ = "peer_relations"

    user_id = Column(String, primary_key=True)
    peer_id = Column(String, primary_key=True)
    first_met_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class EncounterRecord(Base):
    __tablename__ = "encounters"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(String, nullable=False)
    peer_id = Column(String, nullable=False)
    room_id = Column(String, nullable=False)
    place = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "date", "peer_id", name="uq_encounter_user_date_peer"),
    )

    @property
    def key(self) -> str:
        return f"{self.date}_{self.peer_id}"
