"""
WebSocket Endpoint for Real-time Communications
===============================================

One persistent connection per client session, used only for ephemeral
typing signals. Durable messages travel over the HTTP API.

Authentication (optional unless WS_REQUIRE_TOKEN is set):
    - Provide token via query parameter: /ws?token=YOUR_JWT
    - OR via Authorization header: "Bearer YOUR_JWT"

Each connection runs a reader task (inbound frames -> lifecycle) and a
writer task (outbound queue -> socket); whichever finishes first ends the
connection, the lifecycle is closed and the remaining tasks are cancelled.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Header, Query, WebSocket, status

from ..auth.session import verify_session_jwt_optional
from ..dependencies import get_registry
from .channel import WebSocketChannel
from .events import PING_EVENT
from .lifecycle import ConnectionLifecycle
from .registry import ConnectionRegistry

logger = logging.getLogger("dmchat.realtime.ws")

# Router instance
realtime_router = APIRouter()


async def authenticate_websocket(
    websocket: WebSocket,
    token: Optional[str] = None,
    authorization: Optional[str] = None,
) -> Tuple[bool, Optional[int]]:
    """
    Authenticate a WebSocket connection before it is accepted.

    A presented token must be valid. Without a token the connection is
    anonymous, which is only allowed when WS_REQUIRE_TOKEN is off.

    Returns:
        (allowed, user_id) where user_id is set for token-authenticated sockets
    """
    state = websocket.app.state
    settings = state.settings

    auth_token = token
    if not auth_token and authorization:
        # Parse "Bearer <token>" format
        if authorization.startswith("Bearer "):
            auth_token = authorization[7:]
        else:
            auth_token = authorization

    if not auth_token:
        if settings.WS_REQUIRE_TOKEN:
            logger.warning("WebSocket connection attempted without token")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required")
            return False, None
        return True, None

    claims = verify_session_jwt_optional(auth_token, settings, state.revoked_tokens)
    if not claims:
        logger.warning("WebSocket connection attempted with invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return False, None

    return True, claims["user_id"]


async def handle_keepalive(channel: WebSocketChannel, interval: float) -> None:
    """
    Queue a ping every ``interval`` seconds until the channel closes.
    """
    while not channel.closed:
        await asyncio.sleep(interval)
        channel.send(dict(PING_EVENT))


async def receive_loop(websocket: WebSocket, lifecycle: ConnectionLifecycle) -> None:
    """Feed inbound frames to the lifecycle until the client disconnects."""
    while True:
        message = await websocket.receive()

        if message["type"] == "websocket.disconnect":
            logger.info(
                "WebSocket disconnected by client",
                extra={"user_id": lifecycle.user_id, "code": message.get("code")},
            )
            return

        data = message.get("text")
        if data is None:
            data = message.get("bytes")
        lifecycle.handle_message(data)


@realtime_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
):
    """
    WebSocket endpoint for typing indicators.

    Client Messages:
        - {"type": "init", "userId": 1}
        - {"type": "typing", "conversationId": 5, "isTyping": true}

    Server Events:
        - {"type": "ping"}
        - {"type": "typing", "userId": 1, "conversationId": 5, "isTyping": true}
        - {"type": "message", "conversationId": 5, "messageId": 9, "senderId": 1}
    """
    allowed, authenticated_user_id = await authenticate_websocket(websocket, token, authorization)
    if not allowed:
        return  # Connection already closed by authenticate_websocket

    state = websocket.app.state
    settings = state.settings

    await websocket.accept()

    channel = WebSocketChannel(websocket, max_queue_size=settings.WS_SEND_QUEUE_SIZE)
    lifecycle = ConnectionLifecycle(
        channel,
        state.registry,
        state.relay,
        authenticated_user_id=authenticated_user_id,
    )
    lifecycle.open()

    writer_task = asyncio.create_task(channel.run_writer())
    background = [asyncio.create_task(receive_loop(websocket, lifecycle))]
    if settings.WS_PING_INTERVAL_SECONDS > 0:
        background.append(
            asyncio.create_task(handle_keepalive(channel, settings.WS_PING_INTERVAL_SECONDS))
        )

    try:
        await asyncio.wait([writer_task, *background], return_when=asyncio.FIRST_COMPLETED)

    except Exception as e:
        logger.error(f"WebSocket error: {str(e)}", exc_info=True)

    finally:
        lifecycle.close()
        channel.close()

        # A server-side close has already been written by the writer; after a
        # client disconnect there is no transport left to close.
        tasks = [writer_task, *background]
        for task in tasks:
            task.cancel()

        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Connection task ended with error: {str(result)}")
        finally:
            logger.info(
                "WebSocket connection closed",
                extra={"user_id": lifecycle.user_id},
            )


@realtime_router.get("/realtime/status")
async def realtime_status(registry: ConnectionRegistry = Depends(get_registry)):
    """
    Get real-time service status and statistics.
    """
    return {
        "status": "ok",
        "active_connections": len(registry),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


__all__ = ["realtime_router", "authenticate_websocket", "receive_loop", "handle_keepalive"]
