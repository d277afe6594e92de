"""JWT token generation and validation for daygrid."""

import os
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict
from dotenv import load_dotenv

load_dotenv()

# JWT configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(owner_id: str, expires_in: Optional[timedelta] = None) -> str:
    """Create a JWT access token for a schedule owner.

    Args:
        owner_id: Owner ID to encode in the `sub` claim
        expires_in: Lifetime (JWT_EXPIRATION_HOURS if omitted)

    Returns:
        Encoded JWT token string
    """
    now = datetime.utcnow()
    payload = {
        "sub": owner_id,
        "exp": now + (expires_in if expires_in is not None else timedelta(hours=JWT_EXPIRATION_HOURS)),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT access token; None if invalid or expired."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_owner_id_from_token(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    if payload:
        return payload.get("sub")
    return None
