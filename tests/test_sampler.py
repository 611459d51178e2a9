import pytest

from conftest import offset
from touchin.schemas.enums import SpeedClass
from touchin.services.records import Position
from touchin.services.sampler import LocationSampler, SamplerParams


def test_first_sample_is_accepted_and_speed_unknown():
    sampler = LocationSampler()
    assert sampler.accept(Position(35.0, 139.0, 0.0))
    assert sampler.speed_mps is None
    assert sampler.speed_class is SpeedClass.unknown
    assert not sampler.is_slow


def test_throttle_drops_small_quick_moves():
    sampler = LocationSampler(SamplerParams(min_distance_m=5, min_interval_s=3))
    sampler.accept(Position(35.0, 139.0, 0.0))

    lat, lon = offset(35.0, 139.0, 1.0, 90)
    assert not sampler.accept(Position(lat, lon, 1.0))
    assert sampler.last.timestamp == 0.0

    lat, lon = offset(35.0, 139.0, 10.0, 90)
    assert sampler.accept(Position(lat, lon, 1.5))


def test_throttle_accepts_after_interval_without_moving():
    sampler = LocationSampler(SamplerParams(min_distance_m=5, min_interval_s=3))
    sampler.accept(Position(35.0, 139.0, 0.0))
    assert sampler.accept(Position(35.0, 139.0, 3.0))
    assert sampler.speed_mps == pytest.approx(0.0)
    assert sampler.speed_class is SpeedClass.slow


def test_speed_estimate_and_classification():
    sampler = LocationSampler()
    sampler.accept(Position(35.0, 139.0, 0.0))

    lat, lon = offset(35.0, 139.0, 15.0, 0)
    sampler.accept(Position(lat, lon, 10.0))
    assert sampler.speed_mps == pytest.approx(1.5, rel=1e-3)
    assert sampler.is_slow

    lat2, lon2 = offset(lat, lon, 100.0, 0)
    sampler.accept(Position(lat2, lon2, 20.0))
    assert sampler.speed_mps == pytest.approx(10.0, rel=1e-3)
    assert sampler.speed_class is SpeedClass.fast


def test_walking_pace_is_slow_and_jogging_is_fast():
    sampler = LocationSampler(SamplerParams(slow_speed_mps=1.6))
    sampler.accept(Position(0.0, 0.0, 0.0))
    lat, lon = offset(0.0, 0.0, 15.9, 0)
    sampler.accept(Position(lat, lon, 10.0))
    assert sampler.is_slow

    lat2, lon2 = offset(lat, lon, 17.0, 0)
    sampler.accept(Position(lat2, lon2, 20.0))
    assert sampler.speed_class is SpeedClass.fast
