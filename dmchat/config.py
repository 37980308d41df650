"""
Configuration module for the chat service.

This module uses Pydantic Settings to load and validate environment variables
for session JWTs, the real-time channel, CORS and logging.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Everything the service needs at runtime (token signing, WebSocket
    behaviour, server binding) is defined here.
    """

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    SESSION_JWT_SECRET: str = Field(
        default="dev-session-secret-change-me-in-production",
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=1440,
        description="Session JWT expiry time in minutes",
        ge=5,
        le=10080,  # Max 7 days
    )

    JWT_ISSUER: str = Field(
        default="dmchat",
        description="Issuer claim written to and required on session JWTs",
    )

    USE_RS256_JWT: bool = Field(
        default=False,
        description="Sign session JWTs with RS256 instead of the shared secret",
    )

    JWT_PRIVATE_KEY: Optional[str] = Field(
        None,
        description="PEM private key used when USE_RS256_JWT is enabled",
    )

    JWT_PUBLIC_KEY: Optional[str] = Field(
        None,
        description="PEM public key used when USE_RS256_JWT is enabled",
    )

    PASSWORD_MIN_LENGTH: int = Field(
        default=6,
        description="Minimum length for new passwords",
        ge=1,
    )

    # =========================================================================
    # Real-time Channel Configuration
    # =========================================================================

    WS_PING_INTERVAL_SECONDS: float = Field(
        default=0,
        description="Interval for repeated keepalive pings (0 sends only the initial ping)",
        ge=0,
    )

    WS_SEND_QUEUE_SIZE: int = Field(
        default=100,
        description="Maximum pending outbound events per connection before events are dropped",
        ge=1,
    )

    WS_REQUIRE_TOKEN: bool = Field(
        default=False,
        description="Reject WebSocket connections that do not present a valid session JWT",
    )

    PUSH_MESSAGE_EVENTS: bool = Field(
        default=False,
        description="Push a 'message' event to the other participant when a message is created",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the server",
    )

    PORT: int = Field(
        default=5000,
        description="Port to bind the server",
        ge=1,
        le=65535,
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def jwt_algorithm(self) -> str:
        """Algorithm actually used for signing, taking RS256 mode into account."""
        return "RS256" if self.USE_RS256_JWT else self.SESSION_JWT_ALGORITHM

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        level = v.upper()
        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors and warnings are logged.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if settings.USE_RS256_JWT:
        if not settings.JWT_PRIVATE_KEY:
            errors.append("USE_RS256_JWT is enabled but JWT_PRIVATE_KEY is not set")
        if not settings.JWT_PUBLIC_KEY:
            errors.append("USE_RS256_JWT is enabled but JWT_PUBLIC_KEY is not set")
    elif settings.SESSION_JWT_SECRET == Settings.model_fields["SESSION_JWT_SECRET"].default:
        warnings.append("SESSION_JWT_SECRET is using the development default")

    if not settings.WS_REQUIRE_TOKEN:
        warnings.append("WS_REQUIRE_TOKEN is disabled; WebSocket identities are not verified")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "jwt_algorithm": settings.jwt_algorithm,
        "jwt_expiry_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
    }
