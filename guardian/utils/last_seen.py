"""Affichage "vu pour la derniere fois" / "Last seen" display helpers."""

from dataclasses import dataclass

from guardian.utils.clock import from_iso

ONLINE_WINDOW_S = 5 * 60  # en ligne = mis a jour il y a moins de 5 min / online = updated within 5 min


@dataclass(frozen=True)
class LastSeen:
    primary_text: str
    status: str  # online | recently_active | away | offline
    relative_time: str
    seconds_since: float
    secondary_text: str | None = None
    is_urgent: bool = False


def is_presence_online(share_location: bool, updated_at: str | None, now: float) -> bool:
    """En ligne = partage actif ET mise a jour recente / Online = sharing AND recent update."""
    if not share_location or not updated_at:
        return False
    return now - from_iso(updated_at) <= ONLINE_WINDOW_S


def _plural(count: int, unit: str) -> str:
    return f"1 {unit} ago" if count == 1 else f"{count} {unit}s ago"


def format_time_ago(seconds_since: float) -> str:
    """Duree relative / Relative duration ("just now", "5 minutes ago", ...)."""
    seconds = int(max(seconds_since, 0))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    if days // 7 < 4:
        return _plural(days // 7, "week")
    if days // 30 < 12:
        return _plural(days // 30, "month")
    return _plural(days // 365, "year")


def _battery_text(level: int) -> str:
    if level > 50:
        icon = "🔋"
    elif level > 20:
        icon = "🪫"
    else:
        icon = "⚠️"
    return f"{icon} {level}%"


def format_last_seen(
    timestamp: str,
    is_online: bool,
    now: float,
    address: str | None = None,
    battery_level: int | None = None,
) -> LastSeen:
    seconds_since = now - from_iso(timestamp)
    minutes = int(max(seconds_since, 0)) // 60

    if is_online and minutes < 5:
        status = "online"
    elif minutes < 30:
        status = "recently_active"
    elif minutes < 24 * 60:
        status = "away"
    else:
        status = "offline"

    relative = format_time_ago(seconds_since)
    if status == "online":
        primary = "Online now"
    elif status == "recently_active":
        primary = f"Active {relative}"
    else:
        primary = f"Last seen {relative}"

    parts = []
    if address:
        parts.append(f"📍 {address}")
    if battery_level is not None:
        parts.append(_battery_text(battery_level))

    return LastSeen(
        primary_text=primary,
        status=status,
        relative_time=relative,
        seconds_since=seconds_since,
        secondary_text=" • ".join(parts) or None,
        is_urgent=status == "offline",
    )
