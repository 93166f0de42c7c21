"""
Utilitaires d'authentification / Authentication utilities.
Les tokens sont emis par le fournisseur d'auth ; ici on les verifie seulement.
Tokens are issued by the auth provider; this service only verifies them.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from guardian.config import settings


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    """Créer un access token JWT / Create a JWT access token (tests and local tooling)."""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "type": "access", "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Décoder un token JWT / Decode a JWT token. Returns None if invalid."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def user_id_from_token(token: str) -> str | None:
    """Identifiant utilisateur d'un access token valide / User id of a valid access token."""
    payload = decode_token(token) if token else None
    if payload is None or payload.get("type") != "access" or not payload.get("sub"):
        return None
    return str(payload["sub"])
