"""Erreurs du moteur de localisation / Location engine errors."""


class GuardianError(Exception):
    """Base de toutes les erreurs metier / Base of all domain errors."""


class LocationPermissionDenied(GuardianError):
    """Permission de localisation absente ou refusee / Location permission missing or denied."""

    def __init__(self, message: str = "Location permission denied. Open settings to grant access."):
        super().__init__(message)


class LocationServicesDisabled(GuardianError):
    """GPS / services de localisation coupes / Location services turned off."""

    def __init__(self, message: str = "Location services are disabled. Enable GPS in settings."):
        super().__init__(message)


class LocationTimeout(GuardianError):
    """Aucun fix dans le delai / No fix within the time budget."""


class NetworkUnavailable(GuardianError):
    """Store ou geocodeur injoignable / Data store or geocoder unreachable."""


class RateLimited(GuardianError):
    """Le fournisseur de geocodage limite les appels / Geocoding provider is throttling."""


class DuplicateKeyConflict(GuardianError):
    """Insertion concurrente sur une cle unique / Concurrent insert on a unique key."""
