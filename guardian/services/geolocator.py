"""
Geolocator : source des positions de l'appareil.
Geolocator: source of device positions.

Le telephone pousse ses fix via l'API ; DeviceFeedGeolocator les redistribue
aux abonnes (declencheur push) et sert les lectures a la demande.
The phone pushes its fixes through the API; DeviceFeedGeolocator fans them out
to subscribers (push trigger) and serves on-demand reads.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from guardian.exceptions import LocationPermissionDenied, LocationServicesDisabled, LocationTimeout
from guardian.schemas.location import PositionFix
from guardian.utils.clock import Clock, system_clock
from guardian.utils.geo import distance_meters

log = logging.getLogger(__name__)

FixCallback = Callable[[PositionFix], Awaitable[None]]


class AccuracyProfile(str, enum.Enum):
    """Profil de precision / Accuracy profile."""
    BALANCED = "Balanced"
    HIGHEST = "Highest"
    BEST_FOR_NAVIGATION = "BestForNavigation"


class DeviceState(str, enum.Enum):
    """Etat des permissions declare par l'appareil / Permission state reported by the device."""
    GRANTED = "granted"
    DENIED = "denied"
    SERVICES_DISABLED = "services_disabled"


class Subscription(Protocol):
    def remove(self) -> None: ...


class Geolocator(Protocol):
    async def get_current_position(
        self, user_id: str, profile: AccuracyProfile, timeout_ms: int, max_age_ms: int,
    ) -> PositionFix: ...

    def subscribe(
        self, user_id: str, profile: AccuracyProfile, min_interval_ms: int, min_distance_m: float,
        callback: FixCallback,
    ) -> Subscription: ...


@dataclass
class _Subscriber:
    profile: AccuracyProfile
    min_interval_s: float
    min_distance_m: float
    callback: FixCallback
    last_delivered: PositionFix | None = None


@dataclass
class _DeviceFeed:
    state: DeviceState = DeviceState.GRANTED
    latest: PositionFix | None = None
    waiters: list[asyncio.Future] = field(default_factory=list)
    subscribers: list[_Subscriber] = field(default_factory=list)


class _FeedSubscription:
    def __init__(self, feed: _DeviceFeed, subscriber: _Subscriber):
        self._feed = feed
        self._subscriber = subscriber

    def remove(self) -> None:
        if self._subscriber in self._feed.subscribers:
            self._feed.subscribers.remove(self._subscriber)


class DeviceFeedGeolocator:
    """Geolocator alimente par les fix pousses par l'appareil / Geolocator fed by device-pushed fixes."""

    def __init__(self, clock: Clock = system_clock):
        self._clock = clock
        self._feeds: dict[str, _DeviceFeed] = {}
        self._tasks: set[asyncio.Task] = set()

    def _feed(self, user_id: str) -> _DeviceFeed:
        return self._feeds.setdefault(user_id, _DeviceFeed())

    def set_device_state(self, user_id: str, state: DeviceState) -> None:
        self._feed(user_id).state = state

    def _check_state(self, feed: _DeviceFeed) -> None:
        if feed.state == DeviceState.DENIED:
            raise LocationPermissionDenied()
        if feed.state == DeviceState.SERVICES_DISABLED:
            raise LocationServicesDisabled()

    async def get_current_position(
        self, user_id: str, profile: AccuracyProfile, timeout_ms: int, max_age_ms: int,
    ) -> PositionFix:
        """Dernier fix assez recent, sinon attendre le prochain / Latest fresh-enough fix, else wait for the next."""
        feed = self._feed(user_id)
        self._check_state(feed)
        if feed.latest is not None and max_age_ms > 0:
            age_ms = (self._clock() - feed.latest.captured_at) * 1000
            if age_ms <= max_age_ms:
                return feed.latest

        waiter = asyncio.get_running_loop().create_future()
        feed.waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise LocationTimeout(f"No fix for {user_id} within {timeout_ms} ms ({profile.value})") from exc
        finally:
            if waiter in feed.waiters:
                feed.waiters.remove(waiter)

    def subscribe(
        self, user_id: str, profile: AccuracyProfile, min_interval_ms: int, min_distance_m: float,
        callback: FixCallback,
    ) -> Subscription:
        feed = self._feed(user_id)
        subscriber = _Subscriber(profile, min_interval_ms / 1000, min_distance_m, callback)
        feed.subscribers.append(subscriber)
        return _FeedSubscription(feed, subscriber)

    async def push_fix(self, user_id: str, fix: PositionFix) -> int:
        """Injecter un fix de l'appareil ; retourne le nb d'abonnes notifies.
        Feed a device fix; returns the number of subscribers notified.
        """
        feed = self._feed(user_id)
        feed.state = DeviceState.GRANTED
        feed.latest = fix
        for waiter in list(feed.waiters):
            if not waiter.done():
                waiter.set_result(fix)

        delivered = 0
        for subscriber in list(feed.subscribers):
            if not self._should_deliver(subscriber, fix):
                continue
            subscriber.last_delivered = fix
            delivered += 1
            task = asyncio.create_task(self._deliver(user_id, subscriber, fix))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return delivered

    @staticmethod
    def _should_deliver(subscriber: _Subscriber, fix: PositionFix) -> bool:
        """Distance OU intervalle depasse / Distance OR interval exceeded."""
        last = subscriber.last_delivered
        if last is None:
            return True
        if fix.captured_at - last.captured_at >= subscriber.min_interval_s:
            return True
        return distance_meters(last.position, fix.position) >= subscriber.min_distance_m

    @staticmethod
    async def _deliver(user_id: str, subscriber: _Subscriber, fix: PositionFix) -> None:
        try:
            await subscriber.callback(fix)
        except Exception:
            log.exception("Location callback failed for %s", user_id)

    async def drain(self) -> None:
        """Attendre les livraisons en cours / Wait for in-flight deliveries."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
