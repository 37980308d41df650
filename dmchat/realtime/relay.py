"""
Typing Relay
============

Routes ephemeral typing-state events between the participants of a
conversation using only the connection registry.

Conversations are strictly two-party, so "every other connection whose
active conversation is this one" is the other participant if connected.
The scan is linear in connected users; an indexed conversation -> users
lookup would replace it if connection counts grow large.

Delivery is fire-and-forget: no acknowledgement, no retry, and recipients
without a live channel are skipped silently.
"""

import logging
from typing import Any, Dict

from ..models import Message
from .registry import ConnectionEntry, ConnectionRegistry

logger = logging.getLogger("dmchat.realtime.relay")


class TypingRelay:
    """Stateless routing over a ``ConnectionRegistry``."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def relay_typing(self, from_user_id: int, conversation_id: int, is_typing: bool) -> int:
        """
        Record the sender's active conversation and forward the typing state.

        Returns:
            Number of recipients the event was handed to
        """
        if not self.registry.set_active_conversation(from_user_id, conversation_id):
            logger.debug(
                f"Typing event from unregistered user {from_user_id} dropped",
                extra={"conversation_id": conversation_id},
            )
            return 0

        event = {
            "type": "typing",
            "userId": from_user_id,
            "conversationId": conversation_id,
            "isTyping": is_typing,
        }
        delivered = 0

        def is_watching(entry: ConnectionEntry) -> bool:
            return (
                entry.user_id != from_user_id
                and entry.active_conversation_id == conversation_id
            )

        def push(entry: ConnectionEntry) -> None:
            nonlocal delivered
            if self._send(entry, event):
                delivered += 1

        matched = self.registry.for_each(is_watching, push)

        logger.debug(
            "Relayed typing event",
            extra={
                "from_user_id": from_user_id,
                "conversation_id": conversation_id,
                "is_typing": is_typing,
                "recipients": delivered,
                "failed": matched - delivered,
            },
        )
        return delivered

    def notify_message(self, message: Message, recipient_id: int) -> bool:
        """
        Tell ``recipient_id`` that a new message exists so it can refetch.

        Clients still obtain message content over HTTP.
        """
        entry = self.registry.find(recipient_id)
        if entry is None:
            return False

        return self._send(entry, {
            "type": "message",
            "conversationId": message.conversation_id,
            "messageId": message.id,
            "senderId": message.sender_id,
        })

    @staticmethod
    def _send(entry: ConnectionEntry, event: Dict[str, Any]) -> bool:
        try:
            sent = entry.channel.send(event)
        except Exception as e:
            logger.warning(
                f"Failed to push {event.get('type')} event: {str(e)}",
                extra={"user_id": entry.user_id},
            )
            return False

        if not sent:
            logger.debug(
                f"Dropped {event.get('type')} event for closed or saturated channel",
                extra={"user_id": entry.user_id},
            )
        return bool(sent)
