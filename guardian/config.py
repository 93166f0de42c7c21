"""
Configuration de l'application / Application configuration.
Utilise pydantic-settings pour charger depuis .env ou variables d'environnement.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Guardian Location Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True

    # Database - SQLite par défaut pour le développement
    # Database - SQLite by default for development
    DATABASE_URL: str = "sqlite+aiosqlite:///./guardian.db"

    # CORS - origines autorisées / allowed origins
    CORS_ORIGINS: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    # JWT (tokens emis par le fournisseur d'auth / tokens issued by the auth provider)
    SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Rate Limiting
    RATE_LIMIT_FIX: str = "30/minute"
    RATE_LIMIT_DEFAULT: str = "60/minute"

    # Suivi / Tracking defaults
    ACCURACY_PROFILE: str = "Balanced"
    UPDATE_INTERVAL_MS: int = 600_000  # 10 min
    DISTANCE_THRESHOLD_M: int = 50
    HISTORY_WRITE_FREQUENCY_MINUTES: int = 60
    HISTORY_RETENTION_HOURS: int = 24  # 0 = pas de purge / no purge

    # Maintenance periodique / Periodic maintenance
    MAINTENANCE_INTERVAL_S: int = 43_200  # 12 h
    MISSING_LOCATION_HOURS: int = 28

    # Geocodage inverse / Reverse geocoding
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/reverse"
    GEOCODER_USER_AGENT: str = "guardian-location-engine/0.1.0"
    GEOCODER_LANGUAGE: str = "en"
    GEOCODER_TIMEOUT_S: float = 10.0

    # Notifications push / Push notifications
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_TIMEOUT_S: float = 10.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
