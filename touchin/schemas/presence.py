from pydantic import BaseModel, Field
from typing import Optional, List

from touchin.core.match_config import DEFAULT_NEARBY_RADIUS_METERS
from touchin.schemas.enums import SpeedClass


class PositionIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    # epoch seconds; server time when omitted
    timestamp: Optional[float] = None


class PresenceHeartbeatRequest(PositionIn):
    room_id: Optional[str] = None
    text: Optional[str] = None


class EligiblePeerOut(BaseModel):
    peer_id: str
    distance_meters: float
    dwell_seconds: float


class ConfirmedEncounterOut(BaseModel):
    peer_id: str
    date: str
    first_today: bool
    first_ever: bool


class PresenceHeartbeatResponse(BaseModel):
    accepted: bool
    speed_class: SpeedClass
    speed_mps: Optional[float] = None
    place: Optional[str] = None
    stationary: bool = False
    eligible: List[EligiblePeerOut] = []
    confirmed: List[ConfirmedEncounterOut] = []


class PresenceNearbyRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    radius_meters: float = Field(default=DEFAULT_NEARBY_RADIUS_METERS, gt=0)
    room_id: Optional[str] = None


class NearbyUser(BaseModel):
    user_id: str
    lat: float
    lon: float
    distance_meters: float


class PresenceNearbyResponse(BaseModel):
    users: List[NearbyUser]


class MemberOut(BaseModel):
    user_id: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    updated_at: Optional[float] = None
    place: Optional[str] = None
    text: Optional[str] = None


class MembersResponse(BaseModel):
    members: List[MemberOut]


class PlaceResolveRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    room_id: Optional[str] = None


class PlaceResolveResponse(BaseModel):
    place: Optional[str] = None
    cell: str


class TextUpdateRequest(BaseModel):
    text: str
    room_id: Optional[str] = None


class PeerIn(BaseModel):
    id: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    updated_at: Optional[float] = None


class DwellUpdateRequest(PositionIn):
    peers: List[PeerIn]
    room_id: Optional[str] = None
    # overrides the session's own speed classification
    slow: Optional[bool] = None


class DwellUpdateResponse(BaseModel):
    eligible: List[EligiblePeerOut]
