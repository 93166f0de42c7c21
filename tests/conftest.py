"""Fixtures partagees / Shared fixtures: in-memory database, fake collaborators, injectable clock."""

import asyncio
import math

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guardian.database import build_engine, init_db
from guardian.exceptions import GuardianError
from guardian.schemas.location import Position, PositionFix
from guardian.services.data_store import DataStore
from guardian.services.engine import LocationEngine
from guardian.services.tracking_core import TrackingConfig

T0 = 1_700_000_000.0
HOME = Position(latitude=48.8566, longitude=2.3522)


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSubscription:
    def __init__(self, owner: "FakeGeolocator", user_id: str):
        self.owner = owner
        self.user_id = user_id

    def remove(self) -> None:
        self.owner.callbacks.pop(self.user_id, None)


class FakeGeolocator:
    """Fix programmable, delai ou erreur / Programmable fix, delay or error."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.position: Position | None = HOME
        self.battery_level: int | None = 80
        self.error: GuardianError | None = None
        self.delay_s = 0.0
        self.calls = 0
        self.callbacks: dict = {}

    async def get_current_position(self, user_id, profile, timeout_ms, max_age_ms) -> PositionFix:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return PositionFix(position=self.position, battery_level=self.battery_level, captured_at=self.clock())

    def subscribe(self, user_id, profile, min_interval_ms, min_distance_m, callback):
        self.callbacks[user_id] = callback
        return FakeSubscription(self, user_id)


class FakeGeocoder:
    def __init__(self):
        self.calls: list[tuple[float, float]] = []
        self.error: Exception | None = None

    async def reverse(self, lat: float, lon: float) -> str | None:
        self.calls.append((lat, lon))
        if self.error is not None:
            raise self.error
        return f"Addr {lat:.4f},{lon:.4f}"


class FakeNotifier:
    def __init__(self):
        self.messages: list[dict] = []
        self.error: Exception | None = None

    async def notify(self, user_ids, title, body, data=None) -> dict:
        if self.error is not None:
            raise self.error
        self.messages.append({"user_ids": list(user_ids), "title": title, "body": body, "data": data or {}})
        return {"sent": len(user_ids), "failed": 0}


def offset(position: Position, north_m: float = 0.0, east_m: float = 0.0) -> Position:
    """Deplacer une position de quelques metres / Move a position by a few meters."""
    dlat = north_m / 111_320.0
    dlon = east_m / (111_320.0 * math.cos(math.radians(position.latitude)))
    return Position(latitude=position.latitude + dlat, longitude=position.longitude + dlon)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def session_factory():
    db_engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(db_engine, retention_hours=0)
    yield async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    await db_engine.dispose()


@pytest.fixture
def store(session_factory):
    return DataStore(session_factory)


@pytest.fixture
def geolocator(clock):
    return FakeGeolocator(clock)


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def engine(store, geolocator, geocoder, notifier, clock):
    presence_events: list[dict] = []

    async def on_presence(message: dict) -> None:
        presence_events.append({**message, "at": clock()})

    location_engine = LocationEngine(
        store=store,
        geolocator=geolocator,
        geocoder=geocoder,
        notifier=notifier,
        config=TrackingConfig(),
        clock=clock,
        on_presence=on_presence,
    )
    location_engine.presence_events = presence_events
    location_engine.start()
    yield location_engine
    await location_engine.shutdown()
