"""Current-user dependency.

Identity is issued elsewhere; this service only verifies the HS256 bearer
token and reads the user id from its ``sub`` claim.
"""

import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> dict:
    """Verify ``token`` and return its claims.

    Raises:
        jwt.InvalidTokenError: If the signature, expiry or audience is wrong.
    """
    if not settings.AUTH_JWT_SECRET:
        raise jwt.InvalidTokenError("AUTH_JWT_SECRET is not configured")

    options = {"require": ["sub", "exp"]}
    if settings.AUTH_JWT_AUDIENCE:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    options["verify_aud"] = False
    return jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=["HS256"], options=options)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """FastAPI dependency returning the authenticated user's id (401 otherwise)."""
    if credentials is None:
        raise _unauthorized("Authentication required")

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token: %s", e)
        raise _unauthorized("Invalid or expired token") from e

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise _unauthorized("Invalid or expired token")
    return user_id
