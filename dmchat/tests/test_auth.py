"""
Authentication Tests
====================

Tests account registration, login/logout, session JWT verification
(HS256 and RS256), token revocation and profile management.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException, status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from dmchat.auth.passwords import hash_password, verify_password
from dmchat.auth.session import (
    RevokedTokenStore,
    create_session_jwt,
    extract_token_from_header,
    revoke_session_jwt,
    verify_session_jwt,
    verify_session_jwt_optional,
)
from dmchat.config import Settings
from dmchat.main import create_application
from dmchat.models import User


# Test RSA key pair generation for RS256 sessions
def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )
    public_key = private_key.public_key()

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )

    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )

    return private_pem.decode(), public_pem.decode()


# Generate test keys once for reuse
TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()

TEST_USER = User(id=7, username="alice", password="unused-hash")


# ============================================================================
# Passwords
# ============================================================================

class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("secret-password")

        assert hashed != "secret-password"
        assert verify_password("secret-password", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("secret-password", "not-a-bcrypt-hash") is False


# ============================================================================
# Session JWT
# ============================================================================

class TestSessionJWT:

    def test_round_trip_claims(self, settings):
        token = create_session_jwt(TEST_USER, settings)

        claims = verify_session_jwt(token, settings)

        assert claims["sub"] == "7"
        assert claims["user_id"] == 7
        assert claims["username"] == "alice"
        assert claims["iss"] == settings.JWT_ISSUER
        assert claims["jti"]

    def test_each_token_has_unique_jti(self, settings):
        first = verify_session_jwt(create_session_jwt(TEST_USER, settings), settings)
        second = verify_session_jwt(create_session_jwt(TEST_USER, settings), settings)

        assert first["jti"] != second["jti"]

    def test_expired_token_is_rejected(self, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "7",
                "jti": "expired",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
                "iss": settings.JWT_ISSUER,
            },
            settings.SESSION_JWT_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(HTTPException) as exc_info:
            verify_session_jwt(token, settings)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "Token has expired"

    def test_wrong_issuer_is_rejected(self, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "7",
                "jti": "abc",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "iss": "someone-else",
            },
            settings.SESSION_JWT_SECRET,
            algorithm="HS256",
        )

        assert verify_session_jwt_optional(token, settings) is None

    def test_token_signed_with_other_secret_is_rejected(self, settings):
        other = Settings(SESSION_JWT_SECRET="another-secret-value-1234567890abcdef")
        token = create_session_jwt(TEST_USER, other)

        with pytest.raises(HTTPException) as exc_info:
            verify_session_jwt(token, settings)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    def test_revoked_token_is_rejected(self, settings):
        revoked = RevokedTokenStore()
        token = create_session_jwt(TEST_USER, settings)
        claims = verify_session_jwt(token, settings, revoked)

        assert revoke_session_jwt(claims, revoked) is True
        assert len(revoked) == 1

        with pytest.raises(HTTPException) as exc_info:
            verify_session_jwt(token, settings, revoked)

        assert exc_info.value.detail == "Token has been revoked"

    def test_rs256_sessions(self):
        settings = Settings(
            USE_RS256_JWT=True,
            JWT_PRIVATE_KEY=TEST_PRIVATE_KEY,
            JWT_PUBLIC_KEY=TEST_PUBLIC_KEY,
        )

        token = create_session_jwt(TEST_USER, settings)

        assert jwt.get_unverified_header(token)["alg"] == "RS256"
        assert verify_session_jwt(token, settings)["user_id"] == 7

    def test_optional_verification_of_missing_token(self, settings):
        assert verify_session_jwt_optional(None, settings) is None
        assert verify_session_jwt_optional("", settings) is None

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer", "Bearer a b"])
    def test_extract_token_rejects_bad_headers(self, header):
        with pytest.raises(HTTPException) as exc_info:
            extract_token_from_header(header)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED

    def test_extract_token_accepts_bearer(self):
        assert extract_token_from_header("Bearer abc.def.ghi") == "abc.def.ghi"
        assert extract_token_from_header("bearer abc") == "abc"


# ============================================================================
# Registration / Login / Logout Endpoints
# ============================================================================

class TestAccountEndpoints:

    def test_register_returns_token_and_public_user(self, client):
        response = client.post("/api/register", json={"username": "alice", "password": "secret-password"})

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["user"] == {"id": 1, "username": "alice", "profilePicture": None}
        assert data["tokenType"] == "Bearer"
        assert data["expiresIn"] == 60 * 60
        assert "password" not in data["user"]

    def test_register_strips_username(self, client):
        response = client.post("/api/register", json={"username": "  alice  ", "password": "secret-password"})

        assert response.json()["user"]["username"] == "alice"

    def test_register_duplicate_username(self, client, signup):
        signup("alice")

        response = client.post("/api/register", json={"username": "alice", "password": "another-password"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Username already exists"

    def test_register_short_password(self, client):
        response = client.post("/api/register", json={"username": "alice", "password": "abc"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_register_missing_fields(self, client):
        response = client.post("/api/register", json={"username": "alice"})

        assert response.status_code == 422

    def test_login(self, client, signup):
        signup("alice")

        response = client.post("/api/login", json={"username": "alice", "password": "secret-password"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["username"] == "alice"

    @pytest.mark.parametrize(
        "username, password",
        [("alice", "wrong-password"), ("nobody", "secret-password")],
    )
    def test_login_failures(self, client, signup, username, password):
        signup("alice")

        response = client.post("/api/login", json={"username": username, "password": password})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Invalid username or password"

    def test_current_user(self, client, signup):
        alice = signup("alice")

        response = client.get("/api/user", headers=alice["headers"])

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["username"] == "alice"

    def test_current_user_requires_token(self, client):
        response = client.get("/api/user")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_logout_revokes_token(self, client, signup):
        alice = signup("alice")

        assert client.post("/api/logout", headers=alice["headers"]).json() == {"status": "ok"}

        response = client.get("/api/user", headers=alice["headers"])
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Token has been revoked"

    def test_token_for_unknown_user(self, client, settings):
        token = create_session_jwt(User(id=99, username="ghost", password="x"), settings)

        response = client.get("/api/user", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "User not found"


# ============================================================================
# Profile Endpoints
# ============================================================================

class TestProfileEndpoints:

    def test_change_password(self, client, signup):
        alice = signup("alice")

        response = client.post(
            "/api/user/change-password",
            json={"currentPassword": "secret-password", "newPassword": "brand-new-password"},
            headers=alice["headers"],
        )
        assert response.status_code == status.HTTP_200_OK

        old_login = client.post("/api/login", json={"username": "alice", "password": "secret-password"})
        new_login = client.post("/api/login", json={"username": "alice", "password": "brand-new-password"})
        assert old_login.status_code == status.HTTP_401_UNAUTHORIZED
        assert new_login.status_code == status.HTTP_200_OK

    def test_change_password_wrong_current(self, client, signup):
        alice = signup("alice")

        response = client.post(
            "/api/user/change-password",
            json={"currentPassword": "not-it", "newPassword": "brand-new-password"},
            headers=alice["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Current password is incorrect"

    def test_change_password_too_short(self, client, signup):
        alice = signup("alice")

        response = client.post(
            "/api/user/change-password",
            json={"currentPassword": "secret-password", "newPassword": "abc"},
            headers=alice["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_set_and_remove_profile_picture(self, client, signup):
        alice = signup("alice")
        url = "https://cdn.example.com/avatars/alice.png"

        response = client.post(
            "/api/user/profile-picture",
            json={"profilePicture": url},
            headers=alice["headers"],
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["profilePicture"] == url

        response = client.delete("/api/user/profile-picture", headers=alice["headers"])
        assert response.json()["profilePicture"] is None

    def test_profile_picture_must_be_url(self, client, signup):
        alice = signup("alice")

        response = client.post(
            "/api/user/profile-picture",
            json={"profilePicture": "not a url"},
            headers=alice["headers"],
        )

        assert response.status_code == 422


# ============================================================================
# RS256 Application
# ============================================================================

def test_rs256_application_flow():
    settings = Settings(
        USE_RS256_JWT=True,
        JWT_PRIVATE_KEY=TEST_PRIVATE_KEY,
        JWT_PUBLIC_KEY=TEST_PUBLIC_KEY,
    )

    with TestClient(create_application(settings=settings)) as client:
        token = client.post(
            "/api/register", json={"username": "alice", "password": "secret-password"}
        ).json()["accessToken"]

        response = client.get("/api/user", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["username"] == "alice"


def test_missing_public_key_makes_optional_verification_fail_closed():
    settings = Settings(USE_RS256_JWT=True, JWT_PRIVATE_KEY=TEST_PRIVATE_KEY)
    token = create_session_jwt(TEST_USER, settings)

    assert verify_session_jwt_optional(token, settings) is None


def test_websocket_token_with_missing_public_key_is_rejected():
    settings = Settings(USE_RS256_JWT=True, JWT_PRIVATE_KEY=TEST_PRIVATE_KEY)
    token = create_session_jwt(TEST_USER, settings)

    with TestClient(create_application(settings=settings)) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws?token={token}"):
                pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION
