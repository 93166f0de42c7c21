"""
Decision de persistance (etape A) / Persistence decision (step A).

Fonction pure : memes entrees -> meme (persist, ancre).
Pure function: same inputs -> same (persist, anchor).
"""

from dataclasses import dataclass

from guardian.schemas.location import Position
from guardian.utils.geo import distance_meters

STATIONARY_BLOCK_DISTANCE_M = 30.0
STATIONARY_BLOCK_THRESHOLD_S = 3600.0  # 1 h immobile -> blocage / 1 h stationary -> block
STATIONARY_UPDATE_INTERVAL_S = 1800.0  # rafraichir "vu a" toutes les 30 min / refresh "last seen" every 30 min
DEFAULT_DISTANCE_THRESHOLD_M = 50.0


@dataclass(frozen=True)
class PersistedPosition:
    position: Position
    at: float


@dataclass(frozen=True)
class StationaryAnchor:
    position: Position
    since: float


@dataclass(frozen=True)
class PersistDecision:
    persist: bool
    anchor: StationaryAnchor | None
    blocked: bool = False
    distance_m: float | None = None


def should_persist(
    last_persisted: PersistedPosition | None,
    anchor: StationaryAnchor | None,
    new_pos: Position,
    now: float,
    distance_threshold_m: float = DEFAULT_DISTANCE_THRESHOLD_M,
) -> PersistDecision:
    """Faut-il ecrire la presence ? / Should presence be written?

    Le blocage 1 h dans la zone de 30 m l'emporte toujours sur le rafraichissement 30 min.
    The 1 h block inside the 30 m zone always wins over the 30 min refresh.
    """
    if last_persisted is None:
        return PersistDecision(persist=True, anchor=anchor)

    d = distance_meters(last_persisted.position, new_pos)

    if d > STATIONARY_BLOCK_DISTANCE_M:
        anchor = None
    elif anchor is None:
        anchor = StationaryAnchor(new_pos, now)
    elif distance_meters(anchor.position, new_pos) <= STATIONARY_BLOCK_DISTANCE_M:
        if now - anchor.since >= STATIONARY_BLOCK_THRESHOLD_S:
            return PersistDecision(persist=False, anchor=anchor, blocked=True, distance_m=d)
    else:
        anchor = StationaryAnchor(new_pos, now)

    if now - last_persisted.at >= STATIONARY_UPDATE_INTERVAL_S:
        return PersistDecision(persist=True, anchor=anchor, distance_m=d)
    return PersistDecision(persist=d > distance_threshold_m, anchor=anchor, distance_m=d)


def is_stationary_blocked(
    last_persisted: PersistedPosition | None,
    anchor: StationaryAnchor | None,
    new_pos: Position,
    now: float,
) -> bool:
    """Predicat partage, sans effet de bord / Shared predicate, no side effects."""
    return should_persist(last_persisted, anchor, new_pos, now).blocked
