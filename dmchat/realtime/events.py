"""
Realtime Events Module

Wire format of the real-time channel. Frames are JSON objects with a
``type`` field:

Client -> Server:
    - {"type": "init", "userId": 1}
    - {"type": "typing", "conversationId": 5, "isTyping": true}

Server -> Client:
    - {"type": "ping"}
    - {"type": "typing", "userId": 1, "conversationId": 5, "isTyping": true}
    - {"type": "message", "conversationId": 5, "messageId": 9, "senderId": 1}

Anything else (invalid JSON, unknown types, wrong field types) parses to
None and is discarded by the caller.
"""

import json
import logging
from typing import Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError

logger = logging.getLogger("dmchat.realtime.events")

PING_EVENT = {"type": "ping"}


class InitEvent(BaseModel):
    """Identity announcement; the first meaningful frame on a channel."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["init"] = "init"
    user_id: StrictInt = Field(..., alias="userId")


class TypingEvent(BaseModel):
    """Typing state for one conversation, as sent by a client."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["typing"] = "typing"
    conversation_id: StrictInt = Field(..., alias="conversationId")
    is_typing: StrictBool = Field(..., alias="isTyping")


ClientEvent = Union[InitEvent, TypingEvent]

_EVENT_TYPES: Dict[str, Type[BaseModel]] = {
    "init": InitEvent,
    "typing": TypingEvent,
}


def parse_event(raw: Union[str, bytes, None]) -> Optional[ClientEvent]:
    """
    Parse one inbound frame.

    Returns:
        The recognized event, or None for malformed or unknown payloads
    """
    if raw is None:
        return None

    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.debug("Discarding frame that is not valid JSON")
        return None

    if not isinstance(data, dict):
        logger.debug("Discarding frame that is not a JSON object")
        return None

    event_type = data.get("type")
    model = _EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        logger.debug(f"Discarding frame with unrecognized type: {event_type!r}")
        return None

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Discarding malformed {event_type} frame: {e.error_count()} errors")
        return None
