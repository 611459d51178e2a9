import asyncio
import math
import os
import tempfile

# must be set before touchin.core.config is imported
_TMP = tempfile.mkdtemp(prefix="touchin-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "INFO"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_ALLOW_ANONYMOUS"] = "true"

import pytest

from touchin.core.db import Base, SessionLocal, engine
from touchin.core.errors import GeocodeError
from touchin.core.init_db import init_db
from touchin.geo.distance import EARTH_RADIUS_M


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    init_db(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeGeocoder:
    """Records lookups; returns a fixed name or raises GeocodeError."""

    def __init__(self, name="渋谷", fail=False):
        self.name = name
        self.fail = fail
        self.calls = []

    async def reverse(self, lat, lon):
        self.calls.append((lat, lon))
        if self.fail:
            raise GeocodeError("lookup down")
        return self.name


class StallingGeocoder:
    """Answers each call after its own delay, so later calls can finish first."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    async def reverse(self, lat, lon):
        name, delay = self.answers[len(self.calls)]
        self.calls.append((lat, lon))
        await asyncio.sleep(delay)
        return name


@pytest.fixture
def geocoder():
    return FakeGeocoder()


def offset(lat, lon, distance_m, bearing_deg):
    """Point ``distance_m`` away along ``bearing_deg`` on the haversine sphere."""
    d = distance_m / EARTH_RADIUS_M
    b = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)
    phi2 = math.asin(math.sin(phi1) * math.cos(d) + math.cos(phi1) * math.sin(d) * math.cos(b))
    lam2 = lam1 + math.atan2(
        math.sin(b) * math.sin(d) * math.cos(phi1),
        math.cos(d) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lam2)
