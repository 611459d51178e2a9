import time

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from touchin.api.deps import get_sessions
from touchin.core.auth import get_current_user_id
from touchin.core.config import DEFAULT_ROOM_ID
from touchin.core.db import get_db
from touchin.schemas.presence import (
    ConfirmedEncounterOut,
    DwellUpdateRequest,
    DwellUpdateResponse,
    EligiblePeerOut,
    MemberOut,
    MembersResponse,
    NearbyUser,
    PlaceResolveRequest,
    PlaceResolveResponse,
    PresenceHeartbeatRequest,
    PresenceHeartbeatResponse,
    PresenceNearbyRequest,
    PresenceNearbyResponse,
    TextUpdateRequest,
)
from touchin.services import members
from touchin.services.nearby import get_nearby
from touchin.services.place_resolver import cell_key
from touchin.services.records import EligiblePeer, PeerSnapshot, Position
from touchin.services.session import SessionRegistry

router = APIRouter()
dwell_router = APIRouter()


def _eligible_out(peers: list[EligiblePeer], now: float) -> list[EligiblePeerOut]:
    return [
        EligiblePeerOut(
            peer_id=p.peer_id,
            distance_meters=round(p.distance_m, 1),
            dwell_seconds=round(p.dwell_seconds(now), 1),
        )
        for p in peers
    ]


# ------------------------------------------------------------------
# HEARTBEAT
# ------------------------------------------------------------------

@router.post("/heartbeat", response_model=PresenceHeartbeatResponse)
async def presence_heartbeat(
    payload: PresenceHeartbeatRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    sessions: SessionRegistry = Depends(get_sessions),
):
    room_id = payload.room_id or DEFAULT_ROOM_ID
    session = sessions.get(user_id, room_id)

    if payload.text is not None:
        members.set_text(db, user_id, payload.text, room_id=room_id)

    timestamp = time.time() if payload.timestamp is None else payload.timestamp
    pos = Position(lat=payload.lat, lon=payload.lon, timestamp=timestamp)
    peers = members.list_members(db, room_id)

    already = len(session.results)
    update = await session.on_position(pos, peers)
    # the request is the callback here: let place/ledger work finish before answering
    await session.settle()

    return PresenceHeartbeatResponse(
        accepted=update.accepted,
        speed_class=update.speed_class,
        speed_mps=update.speed_mps,
        place=session.place.label,
        stationary=update.stationary,
        eligible=_eligible_out(update.eligible, pos.timestamp),
        confirmed=[
            ConfirmedEncounterOut(
                peer_id=r.peer_id,
                date=r.date,
                first_today=r.first_today,
                first_ever=r.first_ever,
            )
            for r in session.results[already:]
        ],
    )


# ------------------------------------------------------------------
# NEARBY
# ------------------------------------------------------------------

@router.post("/nearby", response_model=PresenceNearbyResponse)
def presence_nearby(
    payload: PresenceNearbyRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    found = get_nearby(
        db,
        user_id,
        payload.lat,
        payload.lon,
        radius_m=payload.radius_meters,
        room_id=payload.room_id or DEFAULT_ROOM_ID,
    )
    return PresenceNearbyResponse(
        users=[
            NearbyUser(user_id=c.peer_id, lat=c.lat, lon=c.lon, distance_meters=round(c.distance_m, 1))
            for c in found
        ]
    )


# ------------------------------------------------------------------
# MEMBERS / PLACE / TEXT
# ------------------------------------------------------------------

@router.get("/members", response_model=MembersResponse)
def presence_members(
    room_id: str = DEFAULT_ROOM_ID,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return MembersResponse(
        members=[
            MemberOut(
                user_id=m.id,
                lat=m.lat,
                lon=m.lon,
                updated_at=m.updated_at,
                place=m.place,
                text=m.text,
            )
            for m in members.list_members(db, room_id)
        ]
    )


@router.post("/place/resolve", response_model=PlaceResolveResponse)
async def presence_resolve_place(
    payload: PlaceResolveRequest,
    user_id: str = Depends(get_current_user_id),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(user_id, payload.room_id or DEFAULT_ROOM_ID)
    place = await session.place.resolve(payload.lat, payload.lon)
    return PlaceResolveResponse(place=place, cell=cell_key(payload.lat, payload.lon, session.place.decimals))


@router.post("/text")
def presence_text(
    payload: TextUpdateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    members.set_text(db, user_id, payload.text, room_id=payload.room_id or DEFAULT_ROOM_ID)
    return {"status": "ok"}


# ------------------------------------------------------------------
# DWELL
# ------------------------------------------------------------------

@dwell_router.post("/update", response_model=DwellUpdateResponse)
def dwell_update(
    payload: DwellUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(user_id, payload.room_id or DEFAULT_ROOM_ID)
    timestamp = time.time() if payload.timestamp is None else payload.timestamp
    pos = Position(lat=payload.lat, lon=payload.lon, timestamp=timestamp)
    peers = [PeerSnapshot(id=p.id, lat=p.lat, lon=p.lon, updated_at=p.updated_at) for p in payload.peers]
    is_slow = session.sampler.is_slow if payload.slow is None else payload.slow

    eligible = session.dwell.update(pos, peers, is_slow, self_id=user_id)
    return DwellUpdateResponse(eligible=_eligible_out(eligible, pos.timestamp))
