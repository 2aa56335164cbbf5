import asyncio
import json
from typing import Any, Dict, Iterable

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


def envelope(event: str, data: Any = None) -> str:
    return json.dumps({"type": event, "data": data})


class ConnectionManager:
    """Delivers events to live WebSocket connections of this process.

    Messages are JSON envelopes: {"type": <event name>, "data": <payload>}.
    """

    def __init__(self):
        # Format: {connection_id: websocket}
        self._connections: Dict[str, WebSocket] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self._connections[connection_id] = websocket
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self._connections)})")

    def unregister(self, connection_id: str):
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Unregistered connection {connection_id} (live connections: {len(self._connections)})")

    @property
    def count(self) -> int:
        return len(self._connections)

    async def send(self, connection_id: str, event: str, data: Any = None):
        websocket = self._connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for unknown connection {connection_id}")
            return
        try:
            await websocket.send_text(envelope(event, data))
        except Exception as e:
            # Connection is going away; its own receive loop does the cleanup
            logger.warning(f"Error sending {event} to connection {connection_id}: {e}")

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any = None):
        send_tasks = [self.send(connection_id, event, data) for connection_id in connection_ids]
        if send_tasks:
            await asyncio.gather(*send_tasks)
            logger.debug(f"Sent {event} to {len(send_tasks)} connections")
