"""
Geocodage inverse avec cache et limitation de debit.
Reverse geocoding with caching and rate limiting.

Un seul resolveur par processus : le cache et l'horodatage du dernier appel
amont sont partages par toutes les sessions.
One resolver per process: the cache and last upstream call timestamp are
shared by every session.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from guardian.config import settings
from guardian.exceptions import NetworkUnavailable, RateLimited
from guardian.utils.clock import Clock, system_clock
from guardian.utils.geo import coord_key, haversine_m

log = logging.getLogger(__name__)

MIN_INTERVAL_S = 120.0  # 2 min entre appels amont / between upstream calls
EMERGENCY_MIN_INTERVAL_S = 30.0
DISTANCE_THRESHOLD_M = 500.0
EMERGENCY_DISTANCE_THRESHOLD_M = 50.0
CACHE_TTL_S = 600.0  # 10 min
CACHE_PRECISION = 4  # ~11 m

# Ordre des composants d'adresse / Address component order
ADDRESS_PARTS = (
    ("house_number",),
    ("road", "pedestrian", "footway"),
    ("city", "town", "village", "hamlet"),
    ("state", "region"),
    ("country",),
)


class ReverseGeocoder(Protocol):
    async def reverse(self, lat: float, lon: float) -> str | None: ...


def format_address(address: dict[str, Any]) -> str | None:
    """Joindre les composants non vides / Join non-empty components."""
    parts = []
    for keys in ADDRESS_PARTS:
        for key in keys:
            value = address.get(key)
            if value:
                parts.append(str(value))
                break
    return ", ".join(parts) or None


class NominatimGeocoder:
    """Client Nominatim (OpenStreetMap) / Nominatim reverse client."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = settings.GEOCODER_URL,
        user_agent: str = settings.GEOCODER_USER_AGENT,
        language: str = settings.GEOCODER_LANGUAGE,
        timeout_s: float = settings.GEOCODER_TIMEOUT_S,
    ):
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._base_url = base_url
        self._headers = {"User-Agent": user_agent, "Accept-Language": language}

    async def reverse(self, lat: float, lon: float) -> str | None:
        params = {
            "format": "jsonv2",
            "lat": f"{lat:.8f}",
            "lon": f"{lon:.8f}",
            "zoom": "18",
            "addressdetails": "1",
        }
        try:
            resp = await self._client.get(self._base_url, params=params, headers=self._headers)
        except httpx.TransportError as exc:
            raise NetworkUnavailable(f"Geocoder unreachable: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimited("Geocoder returned 429 Too Many Requests")
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict) or "error" in data:
            return None
        address = data.get("address") or {}
        return format_address(address) or data.get("display_name")

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass
class _CacheEntry:
    address: str | None
    cached_at: float


class AddressResolver:
    """Coordonnees -> adresse lisible / Coordinates -> human-readable address."""

    def __init__(self, geocoder: ReverseGeocoder, clock: Clock = system_clock):
        self._geocoder = geocoder
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._last_call_at: float | None = None
        self._last_coords: tuple[float, float] | None = None
        self._rate_limit_logged = False
        self.upstream_calls = 0

    def reset_session_warnings(self) -> None:
        """Nouvelle session : reautoriser le log de rate-limit / New session: allow the rate-limit log again."""
        self._rate_limit_logged = False

    def cached(self, lat: float, lon: float) -> str | None:
        entry = self._cache.get(coord_key(lat, lon, CACHE_PRECISION))
        return entry.address if entry else None

    async def resolve(self, lat: float, lon: float, force: bool = False, is_emergency: bool = False) -> str | None:
        now = self._clock()
        key = coord_key(lat, lon, CACHE_PRECISION)
        entry = self._cache.get(key)
        # Perime ou non, mieux que rien en repli / Stale or not, better than nothing as a fallback
        fallback = entry.address if entry else None

        if entry is not None and now - entry.cached_at < CACHE_TTL_S:
            return entry.address

        if not force:
            min_interval = EMERGENCY_MIN_INTERVAL_S if is_emergency else MIN_INTERVAL_S
            if self._last_call_at is not None and now - self._last_call_at < min_interval:
                return fallback

            threshold = EMERGENCY_DISTANCE_THRESHOLD_M if is_emergency else DISTANCE_THRESHOLD_M
            if self._last_coords is not None and haversine_m(*self._last_coords, lat, lon) < threshold:
                return fallback

        self._last_call_at = now
        self.upstream_calls += 1
        try:
            address = await self._geocoder.reverse(lat, lon)
        except RateLimited:
            if not self._rate_limit_logged:
                log.warning("Geocoding rate limit reached, using cached address or skipping")
                self._rate_limit_logged = True
            return fallback
        except (NetworkUnavailable, httpx.HTTPError, ValueError) as exc:
            log.warning("Reverse geocoding failed for (%.5f, %.5f): %s", lat, lon, exc)
            return fallback

        self._last_coords = (lat, lon)
        self._cache[key] = _CacheEntry(address, now)
        self._cleanup(now)
        return address

    def _cleanup(self, now: float) -> None:
        expired = [k for k, v in self._cache.items() if now - v.cached_at > CACHE_TTL_S]
        for k in expired:
            del self._cache[k]
