"""
Authentication dependencies for FastAPI.

Credentials are issued elsewhere; this service only verifies the bearer
token and reads the driver's identity from it.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from driverpay.app.core.exceptions import AuthenticationError
from driverpay.app.core.jwt import decode_access_token

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        Decoded token payload containing at least ``user_id``

    Raises:
        AuthenticationError: 401 if the token is invalid or carries no user id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    # user ids are opaque strings to the record store
    payload["user_id"] = str(user_id)
    return payload
