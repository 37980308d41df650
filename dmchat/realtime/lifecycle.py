"""
Connection Lifecycle
====================

Per-channel state machine::

    CONNECTING --open--> AWAITING_INIT --init--> ACTIVE
         \\                    |                   |
          `------------------close----------------'--> CLOSED

``next_state`` is the pure transition function; ``ConnectionLifecycle``
applies it to one channel and performs the side effects (initial ping,
registry updates, relaying typing events). It never touches the network
directly, so it can be driven by tests without a transport.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .events import PING_EVENT, InitEvent, TypingEvent, parse_event
from .registry import Channel, ConnectionRegistry
from .relay import TypingRelay

logger = logging.getLogger("dmchat.realtime.lifecycle")


class ChannelState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_INIT = "awaiting_init"
    ACTIVE = "active"
    CLOSED = "closed"


class Trigger(str, Enum):
    OPEN = "open"
    INIT = "init"
    TYPING = "typing"
    INVALID = "invalid"
    CLOSE = "close"


_TRANSITIONS: Dict[Tuple[ChannelState, Trigger], ChannelState] = {
    (ChannelState.CONNECTING, Trigger.OPEN): ChannelState.AWAITING_INIT,
    (ChannelState.AWAITING_INIT, Trigger.INIT): ChannelState.ACTIVE,
    (ChannelState.ACTIVE, Trigger.INIT): ChannelState.ACTIVE,
}


def next_state(state: ChannelState, trigger: Trigger) -> ChannelState:
    """
    Pure transition function.

    ``close`` always wins and ``CLOSED`` is terminal; triggers without a
    table entry leave the state unchanged.
    """
    if state is ChannelState.CLOSED or trigger is Trigger.CLOSE:
        return ChannelState.CLOSED
    return _TRANSITIONS.get((state, trigger), state)


class ConnectionLifecycle:
    """
    Drives one channel from open to close.

    Args:
        channel: Push handle for this connection
        registry: Shared connection registry
        relay: Typing relay bound to the same registry
        authenticated_user_id: User id proven by a session token at connect
            time, if any; ``init`` frames for other ids are then discarded
    """

    def __init__(
        self,
        channel: Channel,
        registry: ConnectionRegistry,
        relay: TypingRelay,
        authenticated_user_id: Optional[int] = None,
    ):
        self.channel = channel
        self.registry = registry
        self.relay = relay
        self.authenticated_user_id = authenticated_user_id
        self.state = ChannelState.CONNECTING
        self.user_id: Optional[int] = None

    def _apply(self, trigger: Trigger) -> None:
        new_state = next_state(self.state, trigger)
        if new_state is not self.state:
            logger.debug(
                f"Channel {self.state.value} -> {new_state.value}",
                extra={"user_id": self.user_id, "trigger": trigger.value},
            )
        self.state = new_state

    def open(self) -> None:
        """Transport is open: await identity and signal the channel is writable."""
        if self.state is not ChannelState.CONNECTING:
            return
        self._apply(Trigger.OPEN)
        self.channel.send(dict(PING_EVENT))

    def handle_message(self, raw: Union[str, bytes, None]) -> bool:
        """
        Process one inbound frame.

        Malformed or unrecognized frames are dropped without changing state
        or closing the channel.

        Returns:
            True if the frame was acted upon
        """
        if self.state is ChannelState.CLOSED:
            return False

        event = parse_event(raw)

        if isinstance(event, InitEvent):
            return self._on_init(event)
        if isinstance(event, TypingEvent):
            return self._on_typing(event)

        self._apply(Trigger.INVALID)
        return False

    def _on_init(self, event: InitEvent) -> bool:
        if self.state not in (ChannelState.AWAITING_INIT, ChannelState.ACTIVE):
            return False

        # Evicted channels must not re-register and evict their replacement
        if self.channel.closed:
            return False

        if (
            self.authenticated_user_id is not None
            and event.user_id != self.authenticated_user_id
        ):
            logger.warning(
                "Discarding init for a user other than the authenticated one",
                extra={
                    "claimed_user_id": event.user_id,
                    "authenticated_user_id": self.authenticated_user_id,
                },
            )
            return False

        if self.user_id is not None and self.user_id != event.user_id:
            self.registry.unregister(self.user_id, self.channel)

        self.registry.register(event.user_id, self.channel)
        self.user_id = event.user_id
        self._apply(Trigger.INIT)
        return True

    def _on_typing(self, event: TypingEvent) -> bool:
        if self.state is not ChannelState.ACTIVE or self.channel.closed:
            logger.debug("Discarding typing event on a channel without an identity")
            return False

        self._apply(Trigger.TYPING)
        self.relay.relay_typing(self.user_id, event.conversation_id, event.is_typing)
        return True

    def close(self) -> None:
        """Transport closed (either side). Idempotent."""
        if self.state is ChannelState.CLOSED:
            return

        if self.user_id is not None:
            self.registry.unregister(self.user_id, self.channel)

        self._apply(Trigger.CLOSE)
