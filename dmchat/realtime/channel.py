"""
WebSocket channel adapter.

``send`` and ``close`` only touch an outbound queue so the registry and relay
can call them from synchronous code; ``run_writer`` is the per-connection
task that performs the actual network I/O.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import WebSocket, status

logger = logging.getLogger("dmchat.realtime.channel")

_CLOSE = object()


class WebSocketChannel:
    """
    Non-blocking push handle over a Starlette WebSocket.

    Attributes:
        closed: True once close() was called or the transport failed
    """

    def __init__(self, websocket: WebSocket, max_queue_size: int = 100):
        self.websocket = websocket
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._close_code = status.WS_1000_NORMAL_CLOSURE
        self._close_reason = ""

    def send(self, event: Dict[str, Any]) -> bool:
        """Queue ``event`` for delivery. Returns False if it was dropped."""
        if self.closed:
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full, dropping event",
                extra={"event_type": event.get("type")},
            )
            return False
        return True

    def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str = "") -> None:
        """Stop accepting events and ask the writer to close the transport."""
        if self.closed:
            return

        self.closed = True
        self._close_code = code
        self._close_reason = reason

        # Pending events are dropped once closing; make room for the sentinel
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)

    async def run_writer(self) -> None:
        """Deliver queued events until the channel is closed or the send fails."""
        while True:
            item = await self._queue.get()

            if item is _CLOSE:
                try:
                    await self.websocket.close(code=self._close_code, reason=self._close_reason)
                except Exception as e:
                    # Transport already gone
                    logger.debug(f"WebSocket close after disconnect: {str(e)}")
                return

            try:
                await self.websocket.send_json(item)
            except Exception as e:
                logger.warning(
                    f"Failed to send to WebSocket: {str(e)}",
                    extra={"event_type": item.get("type")},
                )
                self.closed = True
                return
