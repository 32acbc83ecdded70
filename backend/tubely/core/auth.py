"""
Authentication Module for Tubely.

Bearer-token authentication with locally issued HS256 JWTs. The only thing the
rest of the application needs from a request is the caller's opaque owner
identity, which is the token's ``sub`` claim.

Usage:
    ```python
    @router.get("/videos")
    async def list_videos(owner_id: str = Depends(get_current_owner_id)):
        ...
    ```
"""

import logging

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tubely.config import Settings, get_settings


# Configure module logger
logger = logging.getLogger(__name__)

# Issuer claim stamped on and required from every token
TOKEN_ISSUER = "tubely-access"

# auto_error=False so a missing header yields 401 rather than 403
security = HTTPBearer(auto_error=False)


# =============================================================================
# Local JWT Functions
# =============================================================================


def create_access_token(user_id: str, settings: Settings | None = None) -> str:
    """
    Create an access token for the given user.

    Token claims:
    - sub: User ID (subject)
    - iss: "tubely-access"
    - iat: Issued at timestamp
    - exp: Expiration timestamp (``jwt_expiration_hours`` from now)

    Args:
        user_id: The user's unique identifier.
        settings: Optional Settings instance. If not provided, uses get_settings().

    Returns:
        str: The encoded JWT token string.
    """
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expire = now + timedelta(hours=settings.jwt_expiration_hours)

    payload = {
        "sub": user_id,
        "iss": TOKEN_ISSUER,
        "iat": now,
        "exp": expire,
    }

    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    logger.info("Created access token for user: %s (expires: %s)", user_id, expire.isoformat())
    return token


def validate_access_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Validate a locally issued JWT.

    Verifies the signature, expiration and issuer.

    Args:
        token: The JWT token string to validate.
        settings: Settings instance containing secret_key for verification.

    Returns:
        dict: The decoded token payload containing claims.

    Raises:
        JWTError: If the token is invalid, expired, or has the wrong issuer.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=TOKEN_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Access token has expired")
        raise
    except JWTError as e:
        logger.warning("Access token validation failed: %s", str(e))
        raise

    logger.debug("Access token validated for subject: %s", payload.get("sub", "unknown"))
    return payload


# =============================================================================
# Authentication Dependencies
# =============================================================================


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthenticated", "message": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def authenticate_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Authenticate the request's Bearer token.

    Returns:
        dict: The validated token payload.

    Raises:
        HTTPException: With 401 status if the header is missing or the token is invalid.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")

    try:
        return validate_access_token(credentials.credentials, settings)
    except JWTError as e:
        raise _unauthorized("Invalid token") from e


async def get_current_owner_id(
    token_data: dict[str, Any] = Depends(authenticate_token),
) -> str:
    """
    Resolve the authenticated caller's owner identity.

    Raises:
        HTTPException: With 401 status if the token has no subject.
    """
    owner_id = token_data.get("sub")
    if not isinstance(owner_id, str) or not owner_id:
        raise _unauthorized("Invalid token")
    return owner_id
