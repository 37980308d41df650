"""
Data Models Module

This module defines Pydantic models for stored records and for request/response
validation throughout the chat service.

Models are organized by functional area:
- Stored records (users, conversations, messages)
- Authentication models (register/login requests, token responses, profile updates)
- Conversation and message models
- System models (health, errors)

All models serialize with camelCase keys and accept either camelCase or
snake_case on input.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model emitting camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Stored Records
# ============================================================================

class User(CamelModel):
    """User record as held by storage. Never returned to clients directly."""
    id: int = Field(..., description="Unique user identifier")
    username: str = Field(..., description="Unique login name")
    password: str = Field(..., description="bcrypt password hash")
    profile_picture: Optional[str] = Field(None, description="Profile picture URL")


class Conversation(CamelModel):
    """Two-party conversation record."""
    id: int = Field(..., description="Unique conversation identifier")
    user1_id: int = Field(..., description="User who started the conversation")
    user2_id: int = Field(..., description="The other participant")

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_participant(self, user_id: int) -> int:
        return self.user2_id if self.user1_id == user_id else self.user1_id


class Message(CamelModel):
    """Message record."""
    id: int = Field(..., description="Unique message identifier")
    conversation_id: int = Field(..., description="Conversation the message belongs to")
    sender_id: int = Field(..., description="User who sent the message")
    content: str = Field(..., description="Message content")
    timestamp: datetime = Field(default_factory=utcnow, description="Creation timestamp (UTC)")
    read: bool = Field(default=False, description="Read receipt flag")
    reply_to_id: Optional[int] = Field(None, description="Message this one replies to")


# ============================================================================
# Authentication Models
# ============================================================================

class UserPublic(CamelModel):
    """User profile as exposed to clients (no password hash)."""
    id: int
    username: str
    profile_picture: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(id=user.id, username=user.username, profile_picture=user.profile_picture)


class CredentialsRequest(CamelModel):
    """Request model for registration and login."""
    username: str = Field(..., min_length=1, max_length=64, description="Login name")
    password: str = Field(..., min_length=1, description="Plain-text password")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username cannot be empty or only whitespace")
        return v


class AuthResponse(CamelModel):
    """Response model containing the session JWT and the authenticated user."""
    user: UserPublic
    access_token: str = Field(..., description="Session JWT token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Token expiration time in seconds")


class PasswordChangeRequest(CamelModel):
    """Request model for changing the current user's password."""
    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=1, description="Replacement password")


class ProfilePictureRequest(CamelModel):
    """Request model for setting the profile picture."""
    profile_picture: AnyHttpUrl = Field(..., description="Image URL")


# ============================================================================
# Conversation / Message Models
# ============================================================================

class ConversationCreateRequest(CamelModel):
    """Request model for starting a conversation with another user."""
    username: str = Field(..., min_length=1, description="Username of the other participant")


class ConversationWithUser(CamelModel):
    """Conversation annotated with the other participant's public profile."""
    id: int
    user1_id: int
    user2_id: int
    other_user: Optional[UserPublic] = None


class MessageCreateRequest(CamelModel):
    """
    Request model for sending a message.

    Content is validated by the route so that empty content maps to a 400
    rather than a schema error.
    """
    content: Optional[str] = Field(None, description="Message text")
    reply_to_id: Optional[int] = Field(None, description="Message being replied to")


class ReadReceiptResponse(CamelModel):
    status: str = "ok"
    updated: int = Field(..., description="Number of messages newly marked as read")


# ============================================================================
# System Models
# ============================================================================

class HealthResponse(CamelModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(default_factory=utcnow, description="Check timestamp")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")
