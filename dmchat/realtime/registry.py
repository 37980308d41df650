"""
Connection Registry
===================

In-memory table mapping each user id to that user's single live real-time
channel and the conversation they last signalled typing activity in.

The registry is owned by the application (created once by the factory and
passed to the lifecycle manager and relay). All operations are synchronous:
on a single event loop they complete without interleaving, so the map needs
no lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger("dmchat.realtime.registry")


class Channel(Protocol):
    """Push handle for one live connection. Neither method may block."""

    closed: bool

    def send(self, event: Dict[str, Any]) -> bool: ...

    def close(self, code: int = 1000, reason: str = "") -> None: ...


# WebSocket close code used when a newer connection replaces an old one
EVICTION_CLOSE_CODE = 4000


@dataclass
class ConnectionEntry:
    """One user's live channel plus advisory routing state."""
    user_id: int
    channel: Channel
    active_conversation_id: Optional[int] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionRegistry:
    """
    Maps ``user_id -> ConnectionEntry``; at most one entry per user.

    Attributes:
        _entries: Dict mapping user id to its connection entry
    """

    def __init__(self):
        self._entries: Dict[int, ConnectionEntry] = {}

    def register(self, user_id: int, channel: Channel) -> ConnectionEntry:
        """
        Bind ``channel`` to ``user_id``, evicting any previous channel.

        The previous channel is removed and closed before the new entry is
        inserted, so two entries for one user never coexist and the stale
        channel receives nothing further. Registering the channel that is
        already bound keeps the existing entry and its active conversation.
        """
        previous = self._entries.get(user_id)
        if previous is not None and previous.channel is channel:
            return previous

        if previous is not None:
            del self._entries[user_id]
            previous.channel.close(EVICTION_CLOSE_CODE, "Superseded by a newer connection")
            logger.info(
                f"Evicted previous connection for user {user_id}",
                extra={"user_id": user_id},
            )

        entry = ConnectionEntry(user_id=user_id, channel=channel)
        self._entries[user_id] = entry

        logger.info(
            f"Registered connection for user {user_id}",
            extra={"user_id": user_id, "total_connections": len(self._entries)},
        )
        return entry

    def unregister(self, user_id: int, channel: Optional[Channel] = None) -> bool:
        """
        Remove the entry for ``user_id`` if present.

        When ``channel`` is given the entry is only removed if it is still
        bound to that channel; a superseded connection tearing down must not
        remove its replacement.

        Returns:
            True if an entry was removed
        """
        entry = self._entries.get(user_id)
        if entry is None:
            return False
        if channel is not None and entry.channel is not channel:
            return False

        del self._entries[user_id]

        logger.info(
            f"Unregistered connection for user {user_id}",
            extra={"user_id": user_id, "total_connections": len(self._entries)},
        )
        return True

    def find(self, user_id: int) -> Optional[ConnectionEntry]:
        return self._entries.get(user_id)

    def set_active_conversation(self, user_id: int, conversation_id: Optional[int]) -> bool:
        entry = self._entries.get(user_id)
        if entry is None:
            return False
        entry.active_conversation_id = conversation_id
        return True

    def for_each(
        self,
        predicate: Callable[[ConnectionEntry], bool],
        action: Callable[[ConnectionEntry], Any],
    ) -> int:
        """
        Apply ``action`` to every entry matching ``predicate``.

        Iterates over a snapshot so actions may mutate the registry.

        Returns:
            Number of matching entries
        """
        matched = 0
        for entry in list(self._entries.values()):
            if predicate(entry):
                action(entry)
                matched += 1
        return matched

    def entries(self) -> List[ConnectionEntry]:
        return list(self._entries.values())

    def close_all(self, code: int = 1001, reason: str = "Server shutdown") -> int:
        """Close every registered channel and clear the registry."""
        entries = list(self._entries.values())
        self._entries.clear()

        for entry in entries:
            entry.channel.close(code, reason)

        logger.info(f"Closed {len(entries)} registered connections")
        return len(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries
