"""
JWT token utilities.

Tokens are minted by the identity provider; this service verifies them
and reads the ``user_id`` claim. ``create_driver_token`` mirrors the
provider's payload shape for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from driverpay.app.core.config import settings


def create_driver_token(user_id: str, expires_delta: Optional[timedelta] = None, **claims: Any) -> str:
    """
    Create a signed access token for a driver.

    Example payload:
        {
            "sub": "driver-42",
            "user_id": "driver-42",
            "exp": 1234567890
        }
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": str(user_id), "user_id": str(user_id), **claims, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate an access token.

    Returns:
        Decoded payload if the signature and expiry are valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
