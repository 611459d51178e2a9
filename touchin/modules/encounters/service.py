from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from touchin.core.config import DEFAULT_ROOM_ID, LEDGER_MAX_RETRIES
from touchin.core.db import SessionLocal, run_transaction
from touchin.core.errors import MissingIdentityError

from .models import EncounterRecord, PeerRelation, UserCounter


@dataclass
class CounterState:
    today_connections: int = 0
    total_connections: int = 0
    last_encounter_date: Optional[str] = None


@dataclass
class EncounterResult:
    peer_id: str
    date: str
    first_today: bool
    first_ever: bool
    counters: CounterState


def today_key(day: Optional[date] = None) -> str:
    """Device-local day as YYYY-MM-DD."""
    return (day or date.today()).isoformat()


def _find_encounter(db: Session, user_id: str, peer_id: str, day: str) -> Optional[EncounterRecord]:
    return (
        db.query(EncounterRecord)
        .filter(
            EncounterRecord.user_id == user_id,
            EncounterRecord.date == day,
            EncounterRecord.peer_id == peer_id,
        )
        .first()
    )


# ---------- LEDGER ----------

def _apply_encounter(
    db: Session,
    user_id: str,
    peer_id: str,
    room_id: str,
    place: Optional[str],
    day: str,
) -> EncounterResult:
    # everything below is computed from what this attempt read, never from a delta
    counter = db.get(UserCounter, user_id)
    encounter = _find_encounter(db, user_id, peer_id, day)
    relation = db.get(PeerRelation, (user_id, peer_id))

    first_today = encounter is None
    first_ever = relation is None

    current_today = 0
    current_total = 0
    if counter is not None:
        current_total = counter.total_connections or 0
        # a new day starts from zero instead of carrying yesterday's count
        if counter.last_encounter_date == day:
            current_today = counter.today_connections or 0
    else:
        counter = UserCounter(user_id=user_id)
        db.add(counter)

    counter.today_connections = current_today + (1 if first_today else 0)
    counter.total_connections = current_total + (1 if first_ever else 0)
    counter.last_encounter_date = day

    if first_ever:
        db.add(PeerRelation(user_id=user_id, peer_id=peer_id))

    if encounter is None:
        db.add(
            EncounterRecord(
                user_id=user_id,
                date=day,
                peer_id=peer_id,
                room_id=room_id,
                place=place,
            )
        )
    else:
        encounter.room_id = room_id
        if place is not None:
            encounter.place = place
        encounter.timestamp = func.now()

    db.flush()

    return EncounterResult(
        peer_id=peer_id,
        date=day,
        first_today=first_today,
        first_ever=first_ever,
        counters=CounterState(
            today_connections=counter.today_connections,
            total_connections=counter.total_connections,
            last_encounter_date=day,
        ),
    )


def record_encounter(
    user_id: Optional[str],
    peer_id: str,
    room_id: str = DEFAULT_ROOM_ID,
    place: Optional[str] = None,
    today: Optional[str] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    max_retries: int = LEDGER_MAX_RETRIES,
) -> EncounterResult:
    """Record an encounter with ``peer_id`` and update the owner's counters.

    One transaction reads the counter row, today's (date, peer) record and the
    ever-met relation, then writes all three. Repeating the call on the same
    day leaves the counters unchanged. Raises LedgerConflictError when the
    transaction keeps conflicting.
    """
    if not user_id:
        raise MissingIdentityError("no user id for recordEncounter")
    if not peer_id:
        raise ValueError("peer_id required")
    if peer_id == user_id:
        raise ValueError("Cannot record an encounter with self")

    day = today or today_key()
    result = run_transaction(
        lambda db: _apply_encounter(db, user_id, peer_id, room_id, place, day),
        session_factory=session_factory,
        max_retries=max_retries,
    )
    logger.info(
        f"Encounter user={user_id} peer={peer_id} date={day} "
        f"first_today={result.first_today} first_ever={result.first_ever} "
        f"today={result.counters.today_connections} total={result.counters.total_connections}"
    )
    return result


# ---------- QUERIES ----------

def has_met_peer_ever(db: Session, user_id: str, peer_id: str) -> bool:
    return db.get(PeerRelation, (user_id, peer_id)) is not None


def has_met_peer_today(db: Session, user_id: str, peer_id: str, today: Optional[str] = None) -> bool:
    return _find_encounter(db, user_id, peer_id, today or today_key()) is not None


def get_counters(db: Session, user_id: str, today: Optional[str] = None) -> CounterState:
    counter = db.get(UserCounter, user_id)
    if counter is None:
        return CounterState()

    day = today or today_key()
    return CounterState(
        today_connections=counter.today_connections if counter.last_encounter_date == day else 0,
        total_connections=counter.total_connections,
        last_encounter_date=counter.last_encounter_date,
    )
