"""
Account routes: registration, login/logout and profile management.

Successful registration and login return a session JWT that clients send as
``Authorization: Bearer <token>`` on every other request.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ..config import Settings
from ..dependencies import get_app_settings, get_revoked_tokens, get_storage
from ..models import (
    AuthResponse,
    CredentialsRequest,
    PasswordChangeRequest,
    ProfilePictureRequest,
    User,
    UserPublic,
)
from ..storage import DuplicateUsernameError, Storage
from .passwords import hash_password, verify_password
from .session import (
    RevokedTokenStore,
    create_session_jwt,
    get_current_claims,
    get_current_user,
    revoke_session_jwt,
)

logger = logging.getLogger("dmchat.auth.routes")


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])


def _auth_response(user: User, settings: Settings) -> AuthResponse:
    return AuthResponse(
        user=UserPublic.from_user(user),
        access_token=create_session_jwt(user, settings),
        expires_in=settings.SESSION_JWT_EXPIRY_MINUTES * 60,
    )


# =============================================================================
# Registration / Login / Logout
# =============================================================================

@auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: CredentialsRequest,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """
    Create an account and log it in.

    Raises:
        HTTPException: 400 if the username is taken or the password is too short
    """
    logger.info("Registration attempt", extra={"username": body.username})

    if len(body.password) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )

    try:
        user = await storage.create_user(body.username, hash_password(body.password))
    except DuplicateUsernameError:
        logger.info("Registration failed - username exists", extra={"username": body.username})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already exists",
        )

    logger.info(f"Registration successful for user {user.id}")
    return _auth_response(user, settings)


@auth_router.post("/login", response_model=AuthResponse)
async def login(
    body: CredentialsRequest,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """
    Exchange username and password for a session JWT.

    Raises:
        HTTPException: 401 for an unknown user or a wrong password
    """
    user = await storage.get_user_by_username(body.username)

    if not user or not verify_password(body.password, user.password):
        logger.info("Login failed", extra={"username": body.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"Login successful for user {user.id}")
    return _auth_response(user, settings)


@auth_router.post("/logout")
async def logout(
    claims: Dict[str, Any] = Depends(get_current_claims),
    revoked: RevokedTokenStore = Depends(get_revoked_tokens),
):
    """Revoke the presented session token."""
    revoke_session_jwt(claims, revoked)
    return {"status": "ok"}


# =============================================================================
# Current User / Profile
# =============================================================================

@auth_router.get("/user", response_model=UserPublic)
async def current_user(user: User = Depends(get_current_user)):
    return UserPublic.from_user(user)


@auth_router.post("/user/change-password")
async def change_password(
    body: PasswordChangeRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """
    Replace the current user's password after checking the current one.

    Raises:
        HTTPException: 400 if the current password is wrong or the new one too short
    """
    if not verify_password(body.current_password, user.password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    if len(body.new_password) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )

    await storage.update_user_password(user.id, hash_password(body.new_password))
    logger.info(f"Password changed for user {user.id}")

    return {"status": "ok"}


@auth_router.post("/user/profile-picture", response_model=UserPublic)
async def set_profile_picture(
    body: ProfilePictureRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    updated = await storage.update_user_profile_picture(user.id, str(body.profile_picture))
    return UserPublic.from_user(updated)


@auth_router.delete("/user/profile-picture", response_model=UserPublic)
async def delete_profile_picture(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    updated = await storage.update_user_profile_picture(user.id, None)
    return UserPublic.from_user(updated)
