"""
JWT Session Management Module
==============================

Handles creation, verification and revocation of the session JWTs that
authenticate HTTP requests and, optionally, WebSocket connections.
Supports HMAC algorithms (default HS256) and RS256.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set

import jwt
from fastapi import Header, HTTPException, Request, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..models import User

logger = logging.getLogger("dmchat.auth.session")


# =============================================================================
# Exceptions
# =============================================================================

class JWTSessionError(Exception):
    """Base exception for JWT session errors"""
    pass


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# Token Revocation
# =============================================================================

class RevokedTokenStore:
    """
    In-memory set of revoked token ids (jti).

    Entries are kept for the lifetime of the process; tokens expire on their
    own so the set stays bounded by logout volume within one expiry window.
    """

    def __init__(self):
        self._revoked: Set[str] = set()

    def revoke(self, jti: str) -> None:
        self._revoked.add(jti)

    def is_revoked(self, jti: Optional[str]) -> bool:
        return bool(jti) and jti in self._revoked

    def __len__(self) -> int:
        return len(self._revoked)


# =============================================================================
# Token Creation
# =============================================================================

def create_session_jwt(user: User, settings: Settings) -> str:
    """
    Create a session JWT for ``user``.

    The subject claim carries the user id as a string; ``username`` and a
    random ``jti`` (used for revocation) are added alongside the standard
    ``iat``/``exp``/``iss`` claims.

    Raises:
        JWTSessionError: If JWT creation fails
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_JWT_EXPIRY_MINUTES),
        "iss": settings.JWT_ISSUER,
    }

    try:
        token = jwt.encode(
            payload,
            _get_signing_key(settings),
            algorithm=settings.jwt_algorithm,
        )
    except JWTSessionError:
        raise
    except Exception as e:
        logger.error(f"Failed to create session JWT: {e}", exc_info=True)
        raise JWTSessionError(f"Failed to create session JWT: {str(e)}") from e

    logger.debug(
        f"Created session JWT for user {user.id}",
        extra={
            "user_id": user.id,
            "expires_in_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        },
    )

    return token


# =============================================================================
# Token Verification
# =============================================================================

def verify_session_jwt(
    token: str,
    settings: Settings,
    revoked: Optional[RevokedTokenStore] = None,
) -> Dict[str, Any]:
    """
    Verify and decode a session JWT.

    Returns:
        Dictionary containing the decoded claims

    Raises:
        HTTPException: 401 for missing, invalid, expired or revoked tokens
    """
    if not token:
        logger.warning("Empty token provided for verification")
        raise _unauthorized("No authentication token provided")

    try:
        decoded = jwt.decode(
            token,
            _get_verification_key(settings),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.JWT_ISSUER,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat", "sub", "iss", "jti"],
            },
        )
    except ExpiredSignatureError:
        logger.warning("JWT token expired")
        raise _unauthorized("Token has expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        raise _unauthorized(f"Invalid token: {str(e)}")

    if revoked is not None and revoked.is_revoked(decoded.get("jti")):
        logger.warning("Revoked JWT token presented", extra={"user_id": decoded.get("sub")})
        raise _unauthorized("Token has been revoked")

    try:
        decoded["user_id"] = int(decoded["sub"])
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token subject")

    return decoded


def verify_session_jwt_optional(
    token: Optional[str],
    settings: Settings,
    revoked: Optional[RevokedTokenStore] = None,
) -> Optional[Dict[str, Any]]:
    """
    Variant of verify_session_jwt that returns None instead of raising.

    Used where authentication is optional (WebSocket handshake). A signing
    configuration problem is logged and treated as an invalid token.
    """
    if not token:
        return None
    try:
        return verify_session_jwt(token, settings, revoked)
    except HTTPException:
        return None
    except JWTSessionError as e:
        logger.error(f"Cannot verify session JWT: {str(e)}")
        return None


def revoke_session_jwt(claims: Dict[str, Any], revoked: RevokedTokenStore) -> bool:
    """
    Revoke the token the given (already verified) claims came from.

    Returns:
        True if the token carried a jti and is now revoked
    """
    jti = claims.get("jti")
    if not jti:
        return False

    revoked.revoke(jti)
    logger.info(f"Revoked token for user {claims.get('sub')}")
    return True


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or its format is invalid
    """
    if not authorization:
        raise _unauthorized("Missing Authorization header")

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid Authorization header format. Expected: 'Bearer <token>'")

    return parts[1]


def _get_signing_key(settings: Settings) -> str:
    """Get the appropriate signing key based on algorithm."""
    if settings.USE_RS256_JWT:
        if not settings.JWT_PRIVATE_KEY:
            raise JWTSessionError("RS256 enabled but JWT_PRIVATE_KEY not configured")
        return settings.JWT_PRIVATE_KEY
    return settings.SESSION_JWT_SECRET


def _get_verification_key(settings: Settings) -> str:
    """Get the appropriate verification key based on algorithm."""
    if settings.USE_RS256_JWT:
        if not settings.JWT_PUBLIC_KEY:
            raise JWTSessionError("RS256 enabled but JWT_PUBLIC_KEY not configured")
        return settings.JWT_PUBLIC_KEY
    return settings.SESSION_JWT_SECRET


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_claims(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Dict[str, Any]:
    """
    FastAPI dependency returning verified claims of the request's session JWT.

    Raises:
        HTTPException: If authentication fails
    """
    token = extract_token_from_header(authorization)
    state = request.app.state
    return verify_session_jwt(token, state.settings, state.revoked_tokens)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> User:
    """
    FastAPI dependency resolving the authenticated user record.

    Usage in routes:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"username": user.username}

    Raises:
        HTTPException: 401 if the token is invalid or its user no longer exists
    """
    claims = await get_current_claims(request, authorization)
    user = await request.app.state.storage.get_user(claims["user_id"])

    if not user:
        logger.warning("Token refers to unknown user", extra={"user_id": claims["user_id"]})
        raise _unauthorized("User not found")

    return user


__all__ = [
    "JWTSessionError",
    "RevokedTokenStore",
    "create_session_jwt",
    "verify_session_jwt",
    "verify_session_jwt_optional",
    "revoke_session_jwt",
    "extract_token_from_header",
    "get_current_claims",
    "get_current_user",
]
