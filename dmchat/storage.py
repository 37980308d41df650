"""
Storage Module

Defines the storage contract used by the HTTP layer and an in-memory
implementation backed by plain dictionaries. A database-backed implementation
only has to subclass ``Storage``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import Conversation, Message, User

logger = logging.getLogger("dmchat.storage")


class StorageError(Exception):
    """Base exception for storage errors"""
    pass


class DuplicateUsernameError(StorageError):
    """Raised when creating a user whose username is already taken"""
    pass


class Storage(ABC):
    """Asynchronous storage contract for users, conversations and messages."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, username: str, password_hash: str) -> User: ...

    @abstractmethod
    async def update_user_password(self, user_id: int, password_hash: str) -> None: ...

    @abstractmethod
    async def update_user_profile_picture(
        self, user_id: int, profile_picture: Optional[str]
    ) -> Optional[User]: ...

    @abstractmethod
    async def get_conversations(self, user_id: int) -> List[Conversation]: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: int) -> Optional[Conversation]: ...

    @abstractmethod
    async def find_conversation_between(
        self, user_a: int, user_b: int
    ) -> Optional[Conversation]: ...

    @abstractmethod
    async def create_conversation(self, user1_id: int, user2_id: int) -> Conversation: ...

    @abstractmethod
    async def get_messages(self, conversation_id: int) -> List[Message]: ...

    @abstractmethod
    async def get_message(self, message_id: int) -> Optional[Message]: ...

    @abstractmethod
    async def create_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        reply_to_id: Optional[int] = None,
    ) -> Message: ...

    @abstractmethod
    async def update_message_read_status(self, message_id: int, read: bool) -> None: ...

    @abstractmethod
    async def mark_conversation_messages_as_read(
        self, conversation_id: int, user_id: int
    ) -> int: ...


class MemStorage(Storage):
    """
    In-memory storage with sequential integer ids starting at 1.

    Records are immutable pydantic models; updates replace the stored copy.
    """

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._conversations: Dict[int, Conversation] = {}
        self._messages: Dict[int, Message] = {}
        self._next_user_id = 1
        self._next_conversation_id = 1
        self._next_message_id = 1

    # ------------------------------------------------------------------ users

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def create_user(self, username: str, password_hash: str) -> User:
        if await self.get_user_by_username(username):
            raise DuplicateUsernameError(f"Username already exists: {username}")

        user = User(id=self._next_user_id, username=username, password=password_hash)
        self._next_user_id += 1
        self._users[user.id] = user

        logger.debug(f"Created user {user.id}", extra={"username": username})
        return user

    async def update_user_password(self, user_id: int, password_hash: str) -> None:
        user = self._users.get(user_id)
        if user:
            self._users[user_id] = user.model_copy(update={"password": password_hash})

    async def update_user_profile_picture(
        self, user_id: int, profile_picture: Optional[str]
    ) -> Optional[User]:
        user = self._users.get(user_id)
        if not user:
            return None

        updated = user.model_copy(update={"profile_picture": profile_picture})
        self._users[user_id] = updated
        return updated

    # ---------------------------------------------------------- conversations

    async def get_conversations(self, user_id: int) -> List[Conversation]:
        return [
            conv for conv in self._conversations.values()
            if conv.has_participant(user_id)
        ]

    async def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    async def find_conversation_between(
        self, user_a: int, user_b: int
    ) -> Optional[Conversation]:
        pair = {user_a, user_b}
        for conv in self._conversations.values():
            if {conv.user1_id, conv.user2_id} == pair:
                return conv
        return None

    async def create_conversation(self, user1_id: int, user2_id: int) -> Conversation:
        conversation = Conversation(
            id=self._next_conversation_id,
            user1_id=user1_id,
            user2_id=user2_id,
        )
        self._next_conversation_id += 1
        self._conversations[conversation.id] = conversation
        return conversation

    # --------------------------------------------------------------- messages

    async def get_messages(self, conversation_id: int) -> List[Message]:
        messages = [
            msg for msg in self._messages.values()
            if msg.conversation_id == conversation_id
        ]
        return sorted(messages, key=lambda msg: (msg.timestamp, msg.id))

    async def get_message(self, message_id: int) -> Optional[Message]:
        return self._messages.get(message_id)

    async def create_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        reply_to_id: Optional[int] = None,
    ) -> Message:
        message = Message(
            id=self._next_message_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            reply_to_id=reply_to_id,
        )
        self._next_message_id += 1
        self._messages[message.id] = message
        return message

    async def update_message_read_status(self, message_id: int, read: bool) -> None:
        message = self._messages.get(message_id)
        if message:
            self._messages[message_id] = message.model_copy(update={"read": read})

    async def mark_conversation_messages_as_read(
        self, conversation_id: int, user_id: int
    ) -> int:
        """Mark every unread message in the conversation not sent by ``user_id``."""
        updated = 0
        for message_id, message in list(self._messages.items()):
            if (
                message.conversation_id == conversation_id
                and message.sender_id != user_id
                and not message.read
            ):
                self._messages[message_id] = message.model_copy(update={"read": True})
                updated += 1
        return updated
