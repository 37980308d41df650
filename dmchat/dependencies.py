"""
FastAPI dependencies exposing the components owned by the application.

Every shared component (storage, connection registry, relay, revocation
list) is created once by the application factory and stored on
``app.state``; routes receive them through these dependencies.
"""

from fastapi import Request

from .auth.session import RevokedTokenStore
from .config import Settings
from .realtime.registry import ConnectionRegistry
from .realtime.relay import TypingRelay
from .storage import Storage


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_relay(request: Request) -> TypingRelay:
    return request.app.state.relay


def get_revoked_tokens(request: Request) -> RevokedTokenStore:
    return request.app.state.revoked_tokens
