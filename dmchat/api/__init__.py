"""
API Package

HTTP routes for conversations, messages and read receipts.
"""

from .routes import api_router

__all__ = [
    "api_router",
]
