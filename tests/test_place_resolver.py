import asyncio

import httpx
import pytest

from conftest import FakeGeocoder, StallingGeocoder
from touchin.core.errors import GeocodeError
from touchin.services.geocoder import NominatimGeocoder, pick_place_name
from touchin.services.place_resolver import PlaceResolver, cell_key


def run(coro):
    return asyncio.run(coro)


def test_cell_key_rounds_to_grid():
    assert cell_key(35.68123, 139.76712) == "35.681,139.767"
    assert cell_key(35.68123, 139.76712) == cell_key(35.6814, 139.7674)


def test_same_cell_within_interval_triggers_one_lookup():
    geocoder = FakeGeocoder("東京駅")
    resolver = PlaceResolver(geocoder, min_interval_s=3)

    assert run(resolver.resolve(35.68123, 139.76712, now=0.0)) == "東京駅"
    assert run(resolver.resolve(35.68131, 139.76718, now=1.0)) == "東京駅"
    assert len(geocoder.calls) == 1
    assert resolver.lookups == 1


def test_new_cell_inside_debounce_is_skipped_then_retried():
    geocoder = FakeGeocoder("A")
    resolver = PlaceResolver(geocoder, min_interval_s=3)
    run(resolver.resolve(35.000, 139.000, now=0.0))

    geocoder.name = "B"
    assert run(resolver.resolve(35.010, 139.010, now=1.0)) == "A"
    assert len(geocoder.calls) == 1

    assert run(resolver.resolve(35.010, 139.010, now=3.5)) == "B"
    assert len(geocoder.calls) == 2
    assert resolver.last_cell == "35.010,139.010"


def test_cached_cell_is_reused_without_lookup():
    geocoder = FakeGeocoder("A")
    resolver = PlaceResolver(geocoder, min_interval_s=3)
    run(resolver.resolve(35.000, 139.000, now=0.0))
    geocoder.name = "B"
    run(resolver.resolve(35.010, 139.010, now=10.0))

    assert run(resolver.resolve(35.000, 139.000, now=11.0)) == "A"
    assert len(geocoder.calls) == 2
    assert resolver.cache == {"35.000,139.000": "A", "35.010,139.010": "B"}


def test_failure_keeps_label_and_cursor():
    geocoder = FakeGeocoder("A")
    resolver = PlaceResolver(geocoder, min_interval_s=3)
    run(resolver.resolve(35.000, 139.000, now=0.0))

    geocoder.fail = True
    assert run(resolver.resolve(35.010, 139.010, now=5.0)) == "A"
    assert resolver.last_cell == "35.000,139.000"
    assert "35.010,139.010" not in resolver.cache

    geocoder.fail = False
    geocoder.name = "B"
    assert run(resolver.resolve(35.010, 139.010, now=10.0)) == "B"
    assert resolver.last_cell == "35.010,139.010"


def test_publish_receives_label_and_failed_publish_is_repeated():
    published = []
    attempts = {"n": 0}

    async def publish(name):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise RuntimeError("store unavailable")
        published.append(name)

    geocoder = FakeGeocoder("A")
    resolver = PlaceResolver(geocoder, publish=publish, min_interval_s=3)

    assert run(resolver.resolve(35.000, 139.000, now=0.0)) == "A"
    assert resolver.last_cell is None
    assert published == []

    run(resolver.resolve(35.000, 139.000, now=1.0))
    assert published == ["A"]
    assert resolver.last_cell == "35.000,139.000"
    assert len(geocoder.calls) == 1


def test_pick_place_name_priority():
    assert pick_place_name({"city": "渋谷区", "railway": "渋谷駅"}) == "渋谷駅"
    assert pick_place_name({"suburb": "道玄坂", "city": "渋谷区"}) == "道玄坂"
    assert pick_place_name({}, fallback="?") == "?"


def test_nominatim_geocoder_parses_address():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["ua"] = request.headers["User-Agent"]
        return httpx.Response(200, json={"address": {"neighbourhood": "丸の内", "city": "千代田区"}})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            geocoder = NominatimGeocoder(base_url="https://geo.test/reverse", user_agent="ua-test", client=client)
            return await geocoder.reverse(35.681, 139.767)

    assert run(go()) == "丸の内"
    assert seen["params"]["format"] == "jsonv2"
    assert seen["ua"] == "ua-test"


def test_nominatim_geocoder_raises_on_http_error():
    async def go():
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
        async with httpx.AsyncClient(transport=transport) as client:
            await NominatimGeocoder(client=client).reverse(35.0, 139.0)

    with pytest.raises(GeocodeError):
        run(go())


def test_slow_lookup_for_left_cell_does_not_win():
    geocoder = StallingGeocoder([("A", 0.2), ("B", 0.01)])
    published = []
    resolver = PlaceResolver(geocoder, publish=published.append, min_interval_s=3)

    async def scenario():
        first = asyncio.ensure_future(resolver.resolve(35.000, 139.000, now=1000.0))
        second = asyncio.ensure_future(resolver.resolve(35.010, 139.000, now=1010.0))
        return await asyncio.gather(first, second)

    assert run(scenario()) == ["A", "B"]
    assert resolver.label == "B"
    assert resolver.last_cell == "35.010,139.000"
    assert published == ["A", "B"]
    assert resolver.lookups == 2
