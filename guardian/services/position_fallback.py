"""
Chaine de repli pour obtenir une position / Fallback chain for obtaining a position.

Ordre : fix en direct -> derniere position en memoire -> dernier historique
(seulement si le reseau est indisponible) -> rien.
Order: live fix -> last in-memory position -> latest history record
(only when the network is unavailable) -> nothing.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from guardian.exceptions import (
    GuardianError,
    LocationPermissionDenied,
    LocationServicesDisabled,
    LocationTimeout,
    NetworkUnavailable,
)
from guardian.schemas.location import Position, PositionFix

log = logging.getLogger(__name__)


class FallbackSource(str, enum.Enum):
    LIVE = "live"
    CACHED = "cached"
    HISTORY = "history"


@dataclass(frozen=True)
class FixAttempt:
    """Resultat de la tentative de fix / Outcome of the live fix attempt."""
    fix: PositionFix | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class ResolvedPosition:
    position: Position
    source: FallbackSource
    battery_level: int | None = None


def fallback_plan(attempt: FixAttempt, online: bool) -> list[FallbackSource]:
    """Sources a essayer dans l'ordre / Sources to try, in order."""
    if attempt.fix is not None:
        return [FallbackSource.LIVE]
    plan = [FallbackSource.CACHED]
    if not online:
        plan.append(FallbackSource.HISTORY)
    return plan


def is_online(error: Exception | None) -> bool:
    return not isinstance(error, NetworkUnavailable)


async def resolve_position(
    fetch_live: Callable[[], Awaitable[PositionFix]],
    cached: Position | None,
    load_history: Callable[[], Awaitable[Position | None]],
    surface_permission_errors: bool = False,
) -> ResolvedPosition | None:
    """Evaluer la chaine ; None = pas de mise a jour ce cycle.
    Evaluate the chain; None = no update this cycle.
    """
    try:
        attempt = FixAttempt(fix=await fetch_live())
    except (LocationPermissionDenied, LocationServicesDisabled) as exc:
        if surface_permission_errors:
            raise
        attempt = FixAttempt(error=exc)
    except (LocationTimeout, NetworkUnavailable) as exc:
        attempt = FixAttempt(error=exc)
    except GuardianError as exc:
        log.warning("Live fix failed: %s", exc)
        attempt = FixAttempt(error=exc)

    for source in fallback_plan(attempt, is_online(attempt.error)):
        if source == FallbackSource.LIVE:
            return ResolvedPosition(attempt.fix.position, source, attempt.fix.battery_level)
        if source == FallbackSource.CACHED and cached is not None:
            return ResolvedPosition(cached, source)
        if source == FallbackSource.HISTORY:
            try:
                position = await load_history()
            except NetworkUnavailable:
                log.info("History fallback unavailable")
                position = None
            if position is not None:
                return ResolvedPosition(position, source)
    return None
