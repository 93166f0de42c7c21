"""
Assemblage des services du moteur / Wiring of the engine services.

Un seul LocationEngine par processus, cree dans le lifespan FastAPI ;
les collaborateurs (store, geolocator, geocodeur, notifier) sont injectes.
One LocationEngine per process, built in the FastAPI lifespan; collaborators
(store, geolocator, geocoder, notifier) are injected.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guardian.services.address_resolver import AddressResolver, NominatimGeocoder, ReverseGeocoder
from guardian.services.check_in_service import CheckInOrchestrator
from guardian.services.connection_sync import ConnectionPresenceSync
from guardian.services.data_store import DataStore
from guardian.services.geolocator import DeviceFeedGeolocator, Geolocator
from guardian.services.maintenance import HistoryMaintenance
from guardian.services.notifier import ExpoPushNotifier, NotificationQueue, Notifier
from guardian.services.sos_recorder import EmergencyTracker, SOSRecorder
from guardian.services.tracking_core import PresenceListener, TrackingConfig, TrackingCore
from guardian.utils.clock import Clock, system_clock

log = logging.getLogger(__name__)


class LocationEngine:
    def __init__(
        self,
        store: DataStore,
        geolocator: Geolocator,
        geocoder: ReverseGeocoder,
        notifier: Notifier,
        config: TrackingConfig | None = None,
        clock: Clock = system_clock,
        on_presence: PresenceListener | None = None,
    ):
        self.store = store
        self.geolocator = geolocator
        self.geocoder = geocoder
        self.notifier = notifier
        self.clock = clock
        self.resolver = AddressResolver(geocoder, clock=clock)
        self.tracking = TrackingCore(
            store, geolocator, self.resolver, config=config, clock=clock, on_presence=on_presence,
        )
        self.sos = SOSRecorder(store, clock=clock)
        self.emergency = EmergencyTracker(self.tracking, self.sos, self.resolver)
        self.connections = ConnectionPresenceSync(store, self.tracking, clock=clock)
        self.notifications = NotificationQueue(notifier)
        self.check_ins = CheckInOrchestrator(store, self.tracking, self.notifications, clock=clock)
        self.maintenance = HistoryMaintenance(store, self.notifications, clock=clock)

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        on_presence: PresenceListener | None = None,
    ) -> "LocationEngine":
        """Collaborateurs de production / Production collaborators."""
        store = DataStore(session_factory)
        return cls(
            store=store,
            geolocator=DeviceFeedGeolocator(),
            geocoder=NominatimGeocoder(),
            notifier=ExpoPushNotifier(store),
            config=TrackingConfig.from_settings(),
            on_presence=on_presence,
        )

    def start(self) -> None:
        self.notifications.start()
        self.maintenance.start()

    async def shutdown(self) -> None:
        """Arreter toutes les taches puis fermer les clients HTTP / Stop every task, then close HTTP clients."""
        await self.maintenance.stop()
        await self.check_ins.stop_all()
        await self.connections.stop_all()
        await self.emergency.stop_all()
        await self.tracking.stop_all()
        await self.notifications.stop()
        for client in (self.geocoder, self.notifier):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        log.info("Location engine stopped")
