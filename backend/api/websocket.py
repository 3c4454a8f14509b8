"""WebSocket event stream: pushes connection and netplay events to the front-end."""

import asyncio
import json
import logging
from typing import Callable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def frame(event: str, data: dict) -> str:
    """Wire form of one event: ``{"event": ..., "data": ...}``."""
    return json.dumps({"event": event, "data": data})


class EventStream:
    """Fans events out to every attached front-end.

    ``snapshot`` returns the ``(event, data)`` pair a client receives on
    attach, so a late front-end starts from the current state rather than
    waiting for the next change.
    """

    def __init__(self, snapshot: Callable[[], tuple[str, dict]] | None = None) -> None:
        self._snapshot = snapshot
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def attach(self, websocket: WebSocket) -> None:
        await websocket.accept()
        if self._snapshot is not None:
            await websocket.send_text(frame(*self._snapshot()))
        self._clients.add(websocket)
        logger.info(f"Front-end attached. Clients: {self.client_count}")

    async def detach(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info(f"Front-end detached. Clients: {self.client_count}")

    async def publish(self, event: str, data: dict) -> None:
        """Send ``event`` to all clients at once; a client that fails is dropped."""
        if not self._clients:
            return
        text = frame(event, data)
        targets = list(self._clients)
        results = await asyncio.gather(
            *(ws.send_text(text) for ws in targets), return_exceptions=True
        )
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping front-end after failed {event} send: {result}")
                self._clients.discard(ws)

    async def handle_event(self, event_type: str, data: dict) -> None:
        """Callback compatible with the state machine and session manager."""
        await self.publish(event_type, data)
