from conftest import offset
from touchin.services.dwell import DwellParams, DwellTracker, SelfWindow, stayed_within
from touchin.services.records import PeerSnapshot, Position

CENTER = (35.0, 139.0)


def _peer(peer_id, distance_m, updated_at, bearing=90):
    lat, lon = offset(CENTER[0], CENTER[1], distance_m, bearing)
    return PeerSnapshot(id=peer_id, lat=lat, lon=lon, updated_at=updated_at)


def _pos(t):
    return Position(CENTER[0], CENTER[1], t)


def test_near_since_set_once_and_not_reset():
    tracker = DwellTracker()
    tracker.update(_pos(0), [_peer("bob", 30, 0)], is_slow=True)
    assert tracker.near_since("bob") == 0

    tracker.update(_pos(60), [_peer("bob", 35, 60)], is_slow=True)
    assert tracker.near_since("bob") == 0


def test_peer_becomes_eligible_after_threshold():
    tracker = DwellTracker(DwellParams(radius_m=100, dwell_threshold_s=600))
    assert tracker.update(_pos(0), [_peer("bob", 13, 0)], is_slow=True) == []
    assert tracker.update(_pos(599), [_peer("bob", 13, 599)], is_slow=True) == []

    eligible = tracker.update(_pos(600), [_peer("bob", 13, 600)], is_slow=True)
    assert [p.peer_id for p in eligible] == ["bob"]
    assert eligible[0].near_since == 0
    assert eligible[0].dwell_seconds(600) == 600

    # re-evaluated on every update, not edge triggered
    again = tracker.update(_pos(660), [_peer("bob", 13, 660)], is_slow=True)
    assert [p.peer_id for p in again] == ["bob"]


def test_stale_or_unlocated_peers_are_cleared_and_never_eligible():
    tracker = DwellTracker(DwellParams(stale_after_s=120, dwell_threshold_s=600))
    tracker.update(_pos(0), [_peer("bob", 10, 0), _peer("eve", 10, 0)], is_slow=True)
    assert tracker.near_since("bob") == 0
    assert tracker.near_since("eve") == 0

    stale_bob = _peer("bob", 10, updated_at=0)
    no_coords_eve = PeerSnapshot(id="eve", updated_at=700)
    eligible = tracker.update(_pos(700), [stale_bob, no_coords_eve], is_slow=True)

    assert eligible == []
    assert tracker.near_since("bob") is None
    assert tracker.near_since("eve") is None


def test_missing_timestamp_counts_as_stale():
    tracker = DwellTracker()
    peer = PeerSnapshot(id="bob", lat=CENTER[0], lon=CENTER[1], updated_at=None)
    tracker.update(_pos(0), [peer], is_slow=True)
    assert tracker.near_since("bob") is None


def test_moving_fast_or_leaving_radius_breaks_contact():
    tracker = DwellTracker(DwellParams(radius_m=100, dwell_threshold_s=600))
    tracker.update(_pos(0), [_peer("bob", 50, 0)], is_slow=True)

    tracker.update(_pos(300), [_peer("bob", 50, 300)], is_slow=False)
    assert tracker.near_since("bob") is None

    tracker.update(_pos(400), [_peer("bob", 50, 400)], is_slow=True)
    assert tracker.near_since("bob") == 400

    tracker.update(_pos(500), [_peer("bob", 101, 500)], is_slow=True)
    assert tracker.near_since("bob") is None

    # contact broke before commit: silently not eligible anymore
    assert tracker.update(_pos(1100), [_peer("bob", 150, 1100)], is_slow=True) == []


def test_self_is_ignored():
    tracker = DwellTracker()
    tracker.update(_pos(0), [_peer("me", 0, 0)], is_slow=True, self_id="me")
    assert tracker.near_since("me") is None


def test_stayed_within_needs_two_samples():
    assert not stayed_within([], 20, 600)
    assert not stayed_within([_pos(0)], 20, 0)


def test_stayed_within_checks_spread_and_span():
    a = _pos(0)
    lat, lon = offset(CENTER[0], CENTER[1], 15, 0)
    b = Position(lat, lon, 300)
    lat, lon = offset(CENTER[0], CENTER[1], 15, 180)
    c = Position(lat, lon, 600)

    # b and c are 30m apart even though each is 15m from a
    assert not stayed_within([a, b, c], 20, 600)
    assert stayed_within([a, b], 20, 300)
    assert not stayed_within([a, b], 20, 301)


def test_self_window_prunes_and_reports_stay():
    window = SelfWindow(radius_m=20, min_duration_s=600, span_s=720)
    for t in range(0, 600, 120):
        assert not window.add(_pos(t))
    assert window.add(_pos(600))

    window.add(_pos(1500))
    assert all(1500 - p.timestamp <= 720 for p in window.points)
    assert len(window) == 1
    assert not window.stayed()


def test_self_window_rejects_span_shorter_than_minimum():
    import pytest

    with pytest.raises(ValueError):
        SelfWindow(min_duration_s=600, span_s=300)
