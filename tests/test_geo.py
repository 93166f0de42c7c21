"""Tests geometrie et affichage / Geometry and display tests."""

import pytest
from pydantic import ValidationError

from guardian.schemas.location import Position
from guardian.utils.clock import from_iso, to_iso
from guardian.utils.geo import coord_key, distance_meters, haversine_m
from guardian.utils.last_seen import format_last_seen, format_time_ago, is_presence_online

PARIS = Position(latitude=48.8566, longitude=2.3522)
LYON = Position(latitude=45.7640, longitude=4.8357)
SYDNEY = Position(latitude=-33.8688, longitude=151.2093)


def test_haversine_paris_lyon():
    # Paris -> Lyon ~ 392 km
    dist = haversine_m(48.8566, 2.3522, 45.7640, 4.8357)
    assert 380_000 < dist < 400_000


@pytest.mark.parametrize("a,b", [(PARIS, LYON), (LYON, SYDNEY), (SYDNEY, PARIS)])
def test_distance_is_symmetric(a, b):
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


@pytest.mark.parametrize("p", [PARIS, LYON, SYDNEY, Position(latitude=90, longitude=180)])
def test_distance_to_self_is_zero(p):
    assert distance_meters(p, p) == 0


def test_position_ranges_validated():
    with pytest.raises(ValidationError):
        Position(latitude=91, longitude=0)
    with pytest.raises(ValidationError):
        Position(latitude=0, longitude=-181)


def test_position_is_immutable():
    with_address = PARIS.with_address("Paris")
    assert PARIS.address is None
    assert with_address.address == "Paris"
    with pytest.raises(ValidationError):
        PARIS.latitude = 0


def test_coord_key_rounds_to_four_decimals():
    assert coord_key(48.85661, 2.35219) == coord_key(48.85664, 2.35224) == "48.8566,2.3522"


def test_iso_round_trip():
    assert from_iso(to_iso(1_700_000_000)) == 1_700_000_000
    assert from_iso("2024-01-01T00:00:00Z") == from_iso("2024-01-01T00:00:00+00:00")


@pytest.mark.parametrize("seconds,text", [
    (5, "just now"),
    (60, "1 minute ago"),
    (59 * 60, "59 minutes ago"),
    (3600, "1 hour ago"),
    (3 * 86400, "3 days ago"),
    (14 * 86400, "2 weeks ago"),
    (400 * 86400, "1 year ago"),
])
def test_format_time_ago(seconds, text):
    assert format_time_ago(seconds) == text


def test_format_last_seen_statuses():
    now = 1_700_000_000
    assert format_last_seen(to_iso(now - 60), True, now).primary_text == "Online now"
    recent = format_last_seen(to_iso(now - 10 * 60), True, now)
    assert recent.status == "recently_active"
    assert recent.primary_text == "Active 10 minutes ago"
    away = format_last_seen(to_iso(now - 2 * 3600), False, now, address="Home", battery_level=15)
    assert away.status == "away"
    assert away.primary_text == "Last seen 2 hours ago"
    assert away.secondary_text == "📍 Home • ⚠️ 15%"
    assert format_last_seen(to_iso(now - 2 * 86400), False, now).is_urgent


def test_presence_online_is_derived():
    now = 1_700_000_000
    assert is_presence_online(True, to_iso(now - 4 * 60), now)
    assert not is_presence_online(True, to_iso(now - 6 * 60), now)
    assert not is_presence_online(False, to_iso(now), now)
    assert not is_presence_online(True, None, now)
