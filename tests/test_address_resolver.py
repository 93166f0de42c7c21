"""Tests du geocodage inverse / Reverse geocoding tests."""

import httpx
import pytest
from conftest import HOME, FakeClock, FakeGeocoder, offset

from guardian.exceptions import NetworkUnavailable, RateLimited
from guardian.services.address_resolver import AddressResolver, NominatimGeocoder, format_address


@pytest.fixture
def resolver(geocoder, clock):
    return AddressResolver(geocoder, clock=clock)


FAR = offset(HOME, north_m=2000)


@pytest.mark.asyncio
async def test_first_call_goes_upstream_and_caches(resolver, geocoder):
    address = await resolver.resolve(HOME.latitude, HOME.longitude)
    assert address == "Addr 48.8566,2.3522"
    assert len(geocoder.calls) == 1
    assert resolver.cached(HOME.latitude, HOME.longitude) == address


@pytest.mark.asyncio
async def test_warm_cache_served_without_upstream(resolver, geocoder, clock):
    first = await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(60)
    assert await resolver.resolve(HOME.latitude + 0.00001, HOME.longitude) == first
    assert len(geocoder.calls) == 1


@pytest.mark.asyncio
async def test_rate_limited_returns_cached_or_none(resolver, geocoder, clock):
    cached = await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(30)
    assert await resolver.resolve(FAR.latitude, FAR.longitude) is None
    # Cache chaud meme limite / Warm cache even while rate-limited
    assert await resolver.resolve(HOME.latitude, HOME.longitude) == cached
    assert len(geocoder.calls) == 1


@pytest.mark.asyncio
async def test_stale_cache_served_when_distance_gated(resolver, geocoder, clock):
    cached = await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(700)
    # Entree perimee mais meme coordonnee : pas d'appel amont / Stale entry, same coordinate: no upstream call
    assert await resolver.resolve(HOME.latitude, HOME.longitude) == cached
    assert len(geocoder.calls) == 1


@pytest.mark.asyncio
async def test_at_most_one_upstream_call_per_interval(resolver, geocoder, clock):
    for step in range(12):
        await resolver.resolve(HOME.latitude + step * 0.02, HOME.longitude)
        clock.advance(10)
    # 120 s de fenetre, 10 s par pas / 120 s window, 10 s per step
    assert len(geocoder.calls) == 1
    await resolver.resolve(FAR.latitude + 0.1, FAR.longitude)
    assert len(geocoder.calls) == 2


@pytest.mark.asyncio
async def test_force_bypasses_rate_limit_and_distance_gate(resolver, geocoder, clock):
    await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(5)
    near = offset(HOME, north_m=100)
    assert await resolver.resolve(near.latitude, near.longitude, force=True) is not None
    assert len(geocoder.calls) == 2


@pytest.mark.asyncio
async def test_distance_gate_skips_nearby_coordinates(resolver, geocoder, clock):
    await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(200)
    near = offset(HOME, north_m=300)
    assert await resolver.resolve(near.latitude, near.longitude) is None
    assert len(geocoder.calls) == 1


@pytest.mark.asyncio
async def test_short_circuit_does_not_advance_timer(resolver, geocoder, clock):
    await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(100)
    await resolver.resolve(FAR.latitude, FAR.longitude)  # limite / rate-limited
    clock.advance(30)
    # 130 s apres le dernier vrai appel / 130 s after the last real call
    assert await resolver.resolve(FAR.latitude, FAR.longitude) is not None
    assert len(geocoder.calls) == 2


@pytest.mark.asyncio
async def test_emergency_uses_tighter_limits(resolver, geocoder, clock):
    await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(40)
    near = offset(HOME, north_m=100)
    assert await resolver.resolve(near.latitude, near.longitude) is None
    assert await resolver.resolve(near.latitude, near.longitude, is_emergency=True) is not None
    assert len(geocoder.calls) == 2


@pytest.mark.asyncio
async def test_provider_rate_limit_falls_back_and_advances_timer(resolver, geocoder, clock):
    geocoder.error = RateLimited("429")
    assert await resolver.resolve(HOME.latitude, HOME.longitude) is None
    geocoder.error = None
    clock.advance(60)
    assert await resolver.resolve(FAR.latitude, FAR.longitude) is None
    assert len(geocoder.calls) == 1


@pytest.mark.asyncio
async def test_network_failure_falls_back_to_cache(resolver, geocoder, clock):
    cached = await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(900)
    geocoder.error = NetworkUnavailable("offline")
    assert await resolver.resolve(HOME.latitude, HOME.longitude, force=True) == cached


@pytest.mark.asyncio
async def test_resolver_is_shared_between_users():
    clock = FakeClock()
    geocoder = FakeGeocoder()
    resolver = AddressResolver(geocoder, clock=clock)
    await resolver.resolve(HOME.latitude, HOME.longitude)
    clock.advance(1)
    await resolver.resolve(FAR.latitude, FAR.longitude)
    assert len(geocoder.calls) == 1


def test_format_address_joins_known_parts():
    parts = {"house_number": "12", "road": "Rue de Rivoli", "city": "Paris", "country": "France", "postcode": "75001"}
    assert format_address(parts) == "12, Rue de Rivoli, Paris, France"
    assert format_address({"town": "Annecy", "state": "Auvergne-Rhône-Alpes"}) == "Annecy, Auvergne-Rhône-Alpes"
    assert format_address({}) is None


@pytest.mark.asyncio
async def test_nominatim_client_parses_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["format"] == "jsonv2"
        assert request.headers["User-Agent"]
        return httpx.Response(200, json={"address": {"road": "Quai Branly", "city": "Paris", "country": "France"}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    geocoder = NominatimGeocoder(client=client, base_url="https://geo.test/reverse")
    assert await geocoder.reverse(48.8584, 2.2945) == "Quai Branly, Paris, France"
    await geocoder.aclose()


@pytest.mark.asyncio
async def test_nominatim_client_maps_429():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(429)))
    geocoder = NominatimGeocoder(client=client, base_url="https://geo.test/reverse")
    with pytest.raises(RateLimited):
        await geocoder.reverse(48.8584, 2.2945)
    await geocoder.aclose()
