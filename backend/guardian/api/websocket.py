"""
WebSocket endpoint for the persistent-connection surface.
Frames in both directions are JSON objects {"event": ..., "data": {...}}.
"""
from fastapi import WebSocket, WebSocketDisconnect
from typing import Any, Dict, Iterable, Optional
import json
import logging
import uuid

from ..utils import utcnow_iso
from ..utils.telemetry import update_websocket_connections

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections.

    Sends to a connection that is no longer registered are dropped, so
    results of work started before a disconnect never reach a stale
    socket.
    """

    def __init__(self):
        """Initialize connection manager."""
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept and register a new connection.

        Returns:
            Generated connection id
        """
        await websocket.accept()

        connection_id = str(uuid.uuid4())
        self.active_connections[connection_id] = websocket
        update_websocket_connections(len(self.active_connections))

        logger.info(f"New client connected: {connection_id}")
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection. Idempotent."""
        if self.active_connections.pop(connection_id, None) is not None:
            update_websocket_connections(len(self.active_connections))
            logger.info(f"Client disconnected: {connection_id}")

    @property
    def count(self) -> int:
        return len(self.active_connections)

    async def send(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        """
        Send one event to one connection.

        Returns:
            False when the connection is gone or the send failed
        """
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for closed connection {connection_id}")
            return False

        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.error(f"Error sending {event} to client {connection_id}: {e}")
            self.disconnect(connection_id)
            return False

    async def send_many(
        self,
        connection_ids: Iterable[str],
        event: str,
        data: Dict[str, Any],
        exclude: Optional[str] = None
    ) -> int:
        """Send to each connection except ``exclude``. Returns deliveries made."""
        delivered = 0
        for connection_id in list(connection_ids):
            if connection_id == exclude:
                continue
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, data: Dict[str, Any]) -> int:
        """Send to every open connection."""
        return await self.send_many(list(self.active_connections), event, data)


async def websocket_endpoint(websocket: WebSocket):
    """
    Persistent-connection endpoint.

    Events from one connection are handled one at a time, in arrival
    order. The dispatcher owns all per-event behavior.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    dispatcher = websocket.app.state.dispatcher

    connection_id = await manager.connect(websocket)

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send(connection_id, "error", {
                    "error": "Invalid JSON",
                    "timestamp": utcnow_iso()
                })
                continue

            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await manager.send(connection_id, "error", {
                    "error": "Frames must be objects with an event name",
                    "timestamp": utcnow_iso()
                })
                continue

            data = frame.get("data")
            await dispatcher.dispatch(connection_id, frame["event"], data if isinstance(data, dict) else {})

    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        manager.disconnect(connection_id)
        dispatcher.handle_disconnect(connection_id)


__all__ = ['ConnectionManager', 'websocket_endpoint']
