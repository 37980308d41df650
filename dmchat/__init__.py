"""
dmchat: two-party direct messaging service.

Accounts, conversations and messages are served over HTTP; typing indicators
travel over a per-session WebSocket channel backed by an in-memory
connection registry.
"""

__version__ = "1.0.0"
