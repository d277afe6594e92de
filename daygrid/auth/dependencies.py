"""FastAPI dependencies for authentication."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from daygrid.auth.jwt import get_owner_id_from_token
from daygrid.models.identity import Identity

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_current_identity(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    """Resolve the schedule owner from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    owner_id = get_owner_id_from_token(credentials.credentials)
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Identity(owner_id=owner_id, is_authenticated=True)
