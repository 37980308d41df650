"""
Unit Tests for Realtime Events
==============================

Tests for dmchat/realtime/events.py
"""

import json

import pytest

from dmchat.realtime.events import InitEvent, TypingEvent, parse_event


def test_parse_init_event():
    event = parse_event('{"type": "init", "userId": 1}')

    assert isinstance(event, InitEvent)
    assert event.user_id == 1


def test_parse_typing_event():
    event = parse_event(json.dumps({"type": "typing", "conversationId": 5, "isTyping": True}))

    assert isinstance(event, TypingEvent)
    assert event.conversation_id == 5
    assert event.is_typing is True


def test_parse_accepts_bytes_frames():
    event = parse_event(b'{"type": "init", "userId": 3}')

    assert isinstance(event, InitEvent)
    assert event.user_id == 3


def test_unknown_fields_are_ignored():
    event = parse_event('{"type": "init", "userId": 1, "extra": "field"}')

    assert isinstance(event, InitEvent)


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not json",
        "42",
        '"init"',
        "[]",
        "{}",
        '{"type": null}',
        '{"type": ["init"]}',
        '{"type": {"init": 1}}',
        '{"type": "ping"}',
        '{"type": "message", "conversationId": 5}',
        '{"type": "init"}',
        '{"type": "init", "userId": "1"}',
        '{"type": "init", "userId": 1.5}',
        '{"type": "init", "userId": true}',
        '{"type": "typing", "conversationId": 5}',
        '{"type": "typing", "isTyping": true}',
        '{"type": "typing", "conversationId": "5", "isTyping": true}',
        '{"type": "typing", "conversationId": 5, "isTyping": "yes"}',
        '{"type": "typing", "conversationId": 5, "isTyping": 1}',
    ],
)
def test_malformed_frames_parse_to_none(raw):
    assert parse_event(raw) is None
