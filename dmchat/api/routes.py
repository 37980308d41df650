"""
Conversation & Message Routes
=============================

Durable side of the chat: conversations, messages and read receipts.
Clients discover new messages by periodically refetching
``GET /conversations/{id}/messages``; when PUSH_MESSAGE_EVENTS is enabled the
other participant additionally gets a ``message`` hint over the real-time
channel.

Endpoints:
----------
- GET  /conversations
- POST /conversations
- GET  /conversations/{conversation_id}/messages
- POST /conversations/{conversation_id}/messages
- POST /conversations/{conversation_id}/read
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..auth.session import get_current_user
from ..config import Settings
from ..dependencies import get_app_settings, get_relay, get_storage
from ..models import (
    Conversation,
    ConversationCreateRequest,
    ConversationWithUser,
    Message,
    MessageCreateRequest,
    ReadReceiptResponse,
    User,
    UserPublic,
)
from ..realtime.relay import TypingRelay
from ..storage import Storage

logger = logging.getLogger("dmchat.api.routes")

api_router = APIRouter(tags=["conversations"])


# ============================================================================
# Helpers
# ============================================================================

async def _with_other_user(
    conversation: Conversation, user_id: int, storage: Storage
) -> ConversationWithUser:
    other = await storage.get_user(conversation.other_participant(user_id))
    return ConversationWithUser(
        id=conversation.id,
        user1_id=conversation.user1_id,
        user2_id=conversation.user2_id,
        other_user=UserPublic.from_user(other) if other else None,
    )


async def _get_participant_conversation(
    conversation_id: int, user: User, storage: Storage
) -> Conversation:
    """
    Load a conversation the current user takes part in.

    Raises:
        HTTPException: 404 if it does not exist, 403 if the user is not a participant
    """
    conversation = await storage.get_conversation(conversation_id)

    if not conversation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )

    if not conversation.has_participant(user.id):
        logger.warning(
            "Conversation access denied",
            extra={"conversation_id": conversation_id, "user_id": user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a participant of this conversation",
        )

    return conversation


# ============================================================================
# Conversations
# ============================================================================

@api_router.get("/conversations", response_model=List[ConversationWithUser])
async def list_conversations(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    conversations = await storage.get_conversations(user.id)
    return [await _with_other_user(conv, user.id, storage) for conv in conversations]


@api_router.post(
    "/conversations",
    response_model=ConversationWithUser,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: ConversationCreateRequest,
    response: Response,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """
    Start a conversation with another user by username.

    If the pair already has a conversation it is returned with 200 instead
    of creating a second one.

    Raises:
        HTTPException: 404 for an unknown username, 400 when targeting oneself
    """
    other_user = await storage.get_user_by_username(body.username.strip())
    if not other_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    if other_user.id == user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot start a conversation with yourself",
        )

    conversation = await storage.find_conversation_between(user.id, other_user.id)
    if conversation:
        response.status_code = status.HTTP_200_OK
    else:
        conversation = await storage.create_conversation(user.id, other_user.id)
        logger.info(
            "Conversation created",
            extra={"conversation_id": conversation.id, "user_id": user.id},
        )

    return await _with_other_user(conversation, user.id, storage)


# ============================================================================
# Messages
# ============================================================================

@api_router.get("/conversations/{conversation_id}/messages", response_model=List[Message])
async def list_messages(
    conversation_id: int,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    await _get_participant_conversation(conversation_id, user, storage)
    return await storage.get_messages(conversation_id)


@api_router.post(
    "/conversations/{conversation_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
)
async def create_message(
    conversation_id: int,
    body: MessageCreateRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    relay: TypingRelay = Depends(get_relay),
    settings: Settings = Depends(get_app_settings),
):
    """
    Store a message from the current user.

    Raises:
        HTTPException: 400 for empty content or a reply target outside the conversation
    """
    conversation = await _get_participant_conversation(conversation_id, user, storage)

    content = (body.content or "").strip()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid message data",
        )

    if body.reply_to_id is not None:
        replied = await storage.get_message(body.reply_to_id)
        if not replied or replied.conversation_id != conversation_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid message data",
            )

    message = await storage.create_message(
        conversation_id,
        user.id,
        content,
        reply_to_id=body.reply_to_id,
    )

    if settings.PUSH_MESSAGE_EVENTS:
        relay.notify_message(message, conversation.other_participant(user.id))

    return message


@api_router.post("/conversations/{conversation_id}/read", response_model=ReadReceiptResponse)
async def mark_read(
    conversation_id: int,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """Mark every message the other participant sent in this conversation as read."""
    await _get_participant_conversation(conversation_id, user, storage)
    updated = await storage.mark_conversation_messages_as_read(conversation_id, user.id)
    return ReadReceiptResponse(updated=updated)
