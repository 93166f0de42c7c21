"""
Dépendances d'authentification et de services / Authentication and service dependencies.
Injectées dans les routes via Depends().
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from guardian.services.engine import LocationEngine
from guardian.utils.auth import user_id_from_token

security = HTTPBearer()


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Extraire l'utilisateur depuis le JWT / Extract the user from the JWT."""
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return user_id


def get_engine(request: Request) -> LocationEngine:
    """Moteur cree au demarrage / Engine built at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Location engine not ready")
    return engine
