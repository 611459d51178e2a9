"""Per-device proximity session.

A ProximitySession owns every piece of mutable proximity state for one
user: sampler, place resolver (cache and cursors), dwell tracker, self
window and the set of encounters already confirmed. Positions arrive one at
a time through a LocationSubscription; network and DB work is pushed to
background tasks so the position callback never waits on it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from touchin.core.config import DEFAULT_ROOM_ID
from touchin.core.db import SessionLocal
from touchin.core.errors import LedgerConflictError, MissingIdentityError
from touchin.modules.encounters.service import EncounterResult, record_encounter
from touchin.schemas.enums import SpeedClass
from touchin.services import members
from touchin.services.dwell import DwellParams, DwellTracker, SelfWindow
from touchin.services.place_resolver import PlaceResolver, ReverseGeocoder
from touchin.services.records import EligiblePeer, PeerSnapshot, Position
from touchin.services.sampler import LocationSampler, SamplerParams

LocationCallback = Callable[[Position], Awaitable[None]]


# ---------------------------
# Subscription
# ---------------------------

class LocationSubscription:
    """Handle returned by a LocationProvider. ``cancel`` is idempotent."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()


class LocationProvider(Protocol):
    def subscribe(self, callback: LocationCallback) -> LocationSubscription: ...


class QueueLocationProvider:
    """Delivers queued positions to a single subscriber, one callback at a time.

    Stands in for the platform location stream (foreground or background).
    Once the subscription is cancelled no further callback starts and the one
    in flight, if any, is cancelled.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Position]" = asyncio.Queue()
        self._callback: Optional[LocationCallback] = None
        self._task: Optional[asyncio.Task] = None

    def push(self, pos: Position) -> None:
        self._queue.put_nowait(pos)

    async def drain(self) -> None:
        """Wait until every queued position has been handled."""
        await self._queue.join()

    def subscribe(self, callback: LocationCallback) -> LocationSubscription:
        if self._callback is not None:
            raise RuntimeError("QueueLocationProvider supports a single subscriber")
        self._callback = callback
        self._task = asyncio.get_running_loop().create_task(self._pump())
        return LocationSubscription(self._unsubscribe)

    def _unsubscribe(self) -> None:
        self._callback = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _pump(self) -> None:
        while True:
            pos = await self._queue.get()
            try:
                callback = self._callback
                if callback is None:
                    return
                await callback(pos)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Location callback failed")
            finally:
                self._queue.task_done()


# ---------------------------
# Session
# ---------------------------

@dataclass
class PositionUpdate:
    accepted: bool
    speed_class: SpeedClass
    speed_mps: Optional[float]
    place: Optional[str]
    stationary: bool = False
    eligible: List[EligiblePeer] = field(default_factory=list)


class ProximitySession:
    def __init__(
        self,
        user_id: Optional[str],
        geocoder: ReverseGeocoder,
        room_id: str = DEFAULT_ROOM_ID,
        session_factory: Callable[[], Session] = SessionLocal,
        sampler_params: Optional[SamplerParams] = None,
        dwell_params: Optional[DwellParams] = None,
        self_window: Optional[SelfWindow] = None,
        publish_location: bool = True,
        tz: Optional[tzinfo] = None,
    ) -> None:
        if not user_id:
            raise MissingIdentityError("proximity session needs a user id")

        self.user_id = user_id
        self.room_id = room_id
        self.tz = tz
        self._session_factory = session_factory
        self._publish_location_enabled = publish_location

        self.sampler = LocationSampler(sampler_params)
        self.dwell = DwellTracker(dwell_params)
        self.self_window = self_window or SelfWindow()
        self.place = PlaceResolver(geocoder, publish=self._publish_place)

        self.roster: List[PeerSnapshot] = []
        self.stationary = False
        self.confirmed: Set[Tuple[str, str]] = set()
        self.results: List[EncounterResult] = []
        self.last_error: Optional[Exception] = None

        self._inflight: Set[Tuple[str, str]] = set()
        self._pending: Set[asyncio.Task] = set()
        self._db_lock = asyncio.Lock()
        self._subscription: Optional[LocationSubscription] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def day_key(self, timestamp: float) -> str:
        return datetime.fromtimestamp(timestamp, tz=self.tz).date().isoformat()

    def update_roster(self, peers: List[PeerSnapshot]) -> None:
        self.roster = [p for p in peers if p.id != self.user_id]

    # ---------- lifecycle ----------

    def start(self, provider: LocationProvider) -> LocationSubscription:
        if self._closed:
            raise RuntimeError("session closed")
        if self.subscribed:
            raise RuntimeError("session already subscribed")
        self._subscription = provider.subscribe(self._on_location)
        logger.info(f"Proximity session started user={self.user_id} room={self.room_id}")
        return self._subscription

    async def close(self) -> None:
        """Unsubscribe first, then wait for outstanding place/ledger work."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        await self.settle()
        self._closed = True
        logger.info(f"Proximity session closed user={self.user_id} room={self.room_id}")

    async def settle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---------- pipeline ----------

    async def _on_location(self, pos: Position) -> None:
        await self.on_position(pos)

    async def on_position(self, pos: Position, peers: Optional[List[PeerSnapshot]] = None) -> PositionUpdate:
        if self._closed:
            raise RuntimeError("session closed")
        if peers is not None:
            self.update_roster(peers)

        if not self.sampler.accept(pos):
            return PositionUpdate(
                accepted=False,
                speed_class=self.sampler.speed_class,
                speed_mps=self.sampler.speed_mps,
                place=self.place.label,
                stationary=self.stationary,
            )

        if self._publish_location_enabled:
            self._spawn(self._publish_location(pos))
        self._spawn(self.place.resolve(pos.lat, pos.lon, now=pos.timestamp))

        self.stationary = self.self_window.add(pos)
        eligible = self.dwell.update(pos, self.roster, self.sampler.is_slow, self_id=self.user_id)

        day = self.day_key(pos.timestamp)
        for peer in eligible:
            self._schedule_commit(peer.peer_id, day)

        return PositionUpdate(
            accepted=True,
            speed_class=self.sampler.speed_class,
            speed_mps=self.sampler.speed_mps,
            place=self.place.label,
            stationary=self.stationary,
            eligible=eligible,
        )

    # ---------- background work ----------

    def _spawn(self, coro: Awaitable) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_db(self, fn: Callable, *args):
        # one writer per session keeps a shared connection usable
        async with self._db_lock:
            return await asyncio.to_thread(fn, *args)

    def _write_location(self, pos: Position) -> None:
        db = self._session_factory()
        try:
            members.publish_location(db, self.user_id, pos.lat, pos.lon, room_id=self.room_id)
        finally:
            db.close()

    def _write_place(self, name: str) -> None:
        db = self._session_factory()
        try:
            members.set_place(db, self.user_id, name, room_id=self.room_id)
        finally:
            db.close()

    async def _publish_location(self, pos: Position) -> None:
        try:
            await self._run_db(self._write_location, pos)
        except SQLAlchemyError as exc:
            logger.warning(f"Publishing location failed user={self.user_id}: {exc}")

    async def _publish_place(self, name: str) -> None:
        await self._run_db(self._write_place, name)

    def _schedule_commit(self, peer_id: str, day: str) -> None:
        key = (day, peer_id)
        if key in self.confirmed or key in self._inflight:
            return
        self._inflight.add(key)
        self._spawn(self._commit(peer_id, day))

    def _record(self, peer_id: str, day: str) -> EncounterResult:
        return record_encounter(
            self.user_id,
            peer_id,
            room_id=self.room_id,
            place=self.place.label,
            today=day,
            session_factory=self._session_factory,
        )

    async def _commit(self, peer_id: str, day: str) -> None:
        key = (day, peer_id)
        try:
            result = await self._run_db(self._record, peer_id, day)
        except (LedgerConflictError, SQLAlchemyError) as exc:
            # left unconfirmed: the next eligible update schedules it again
            self.last_error = exc
            logger.error(f"Encounter commit failed user={self.user_id} peer={peer_id}: {exc}")
            return
        finally:
            self._inflight.discard(key)

        self.confirmed.add(key)
        self.results.append(result)


# ---------------------------
# Registry
# ---------------------------

SessionFactory = Callable[[str, str], ProximitySession]


class SessionRegistry:
    """Live sessions keyed by (user_id, room_id)."""

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._sessions: Dict[Tuple[str, str], ProximitySession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: str, room_id: str = DEFAULT_ROOM_ID) -> ProximitySession:
        key = (user_id, room_id)
        session = self._sessions.get(key)
        if session is None or session.closed:
            session = self._factory(user_id, room_id)
            self._sessions[key] = session
        return session

    async def close(self, user_id: str, room_id: str = DEFAULT_ROOM_ID) -> None:
        session = self._sessions.pop((user_id, room_id), None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for key in list(self._sessions):
            session = self._sessions.pop(key)
            await session.close()
