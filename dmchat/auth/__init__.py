"""
Authentication Package

This package handles accounts and authentication for the chat service.

Key responsibilities:
- Registration and login with bcrypt-hashed passwords
- Session JWT issuance, validation and revocation
- Password change and profile picture management

Modules:
- routes: Public account endpoints (/api/register, /api/login, /api/user, ...)
- session: Session JWT creation and validation logic, FastAPI dependencies
- passwords: Password hashing helpers

The authentication flow:
1. Client registers via /api/register or logs in via /api/login
2. Service returns a session JWT
3. Client sends the JWT as a Bearer token on subsequent API requests
4. /api/logout revokes the token
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
