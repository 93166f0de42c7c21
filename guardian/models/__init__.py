"""
Modèles SQLAlchemy / SQLAlchemy models.
Importer tous les modèles ici pour que create_all les détecte.
Import all models here so create_all can detect them.
"""

from guardian.models.location_history import LocationHistory
from guardian.models.presence import PresenceRecord
from guardian.models.connection import Connection, ConnectionStatus
from guardian.models.check_in import CheckIn, CheckInSettings, CheckInStatus, CheckInType
from guardian.models.user_settings import UserSettings
from guardian.models.push_token import PushToken

__all__ = [
    "LocationHistory",
    "PresenceRecord",
    "Connection",
    "ConnectionStatus",
    "CheckIn",
    "CheckInSettings",
    "CheckInStatus",
    "CheckInType",
    "UserSettings",
    "PushToken",
]
