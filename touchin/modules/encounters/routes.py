from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from touchin.core.auth import get_current_user_id
from touchin.core.config import DEFAULT_ROOM_ID
from touchin.core.db import get_db
from touchin.core.errors import LedgerConflictError
from .service import get_counters, has_met_peer_ever, has_met_peer_today, record_encounter, today_key

router = APIRouter(prefix="/v1/encounters", tags=["encounters"])


# -----------------------------------------------------
# Request / Response Models
# -----------------------------------------------------

class EncounterIn(BaseModel):
    peer_id: str
    room_id: Optional[str] = None
    place: Optional[str] = None
    # device-local YYYY-MM-DD; server date when omitted
    date: Optional[str] = None


class CountersOut(BaseModel):
    today_connections: int
    total_connections: int
    last_encounter_date: Optional[str] = None


class EncounterOut(BaseModel):
    peer_id: str
    date: str
    first_today: bool
    first_ever: bool
    counters: CountersOut


class PeerStatusOut(BaseModel):
    peer_id: str
    met_ever: bool
    met_today: bool


# -----------------------------------------------------
# Routes
# -----------------------------------------------------

@router.post("", response_model=EncounterOut)
def encounter_record(
    payload: EncounterIn,
    user_id: str = Depends(get_current_user_id),
):
    try:
        result = record_encounter(
            user_id,
            payload.peer_id,
            room_id=payload.room_id or DEFAULT_ROOM_ID,
            place=payload.place,
            today=payload.date,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LedgerConflictError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return EncounterOut(
        peer_id=result.peer_id,
        date=result.date,
        first_today=result.first_today,
        first_ever=result.first_ever,
        counters=CountersOut(**vars(result.counters)),
    )


@router.get("/counters", response_model=CountersOut)
def encounter_counters(
    date: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return CountersOut(**vars(get_counters(db, user_id, today=date)))


@router.get("/peers/{peer_id}", response_model=PeerStatusOut)
def encounter_peer_status(
    peer_id: str,
    date: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return PeerStatusOut(
        peer_id=peer_id,
        met_ever=has_met_peer_ever(db, user_id, peer_id),
        met_today=has_met_peer_today(db, user_id, peer_id, today=date or today_key()),
    )
