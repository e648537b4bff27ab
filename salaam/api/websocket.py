"""WebSocket fan-out of discovery browser events."""

import asyncio
import json
import logging

from fastapi import WebSocket

from salaam.discovery.events import ALL_EVENTS
from salaam.discovery.models import SalaamClient

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket subscribers and pushes browser events to them."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)
        logger.info(f"Event subscriber connected ({len(self._connections)} open)")

    def disconnect(self, websocket: WebSocket) -> None:
        self._drop(websocket)
        logger.info(f"Event subscriber disconnected ({len(self._connections)} open)")

    async def broadcast(self, event: str, client: SalaamClient | None = None) -> None:
        """Send ``event`` (with the affected client, if any) to every subscriber."""
        data = client.model_dump() if client is not None else {}
        message = json.dumps({"event": event, "data": data})

        targets = list(self._connections)
        results = await asyncio.gather(
            *(ws.send_text(message) for ws in targets), return_exceptions=True
        )
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping event subscriber after send failure: {result}")
                self._drop(ws)

    def _drop(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)

    def subscribe(self, browser) -> None:
        """Forward every browser event to the connected subscribers."""
        for event in ALL_EVENTS:
            browser.on(event, lambda *args, event=event: self.broadcast(event, *args))
