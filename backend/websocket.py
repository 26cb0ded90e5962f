"""
WebSocket module for the carpool scheduling backend.

Pushes schedule slot events to every client watching a group, using
FastAPI's native WebSocket support.
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

from services.timezone_utils import utcnow

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections per group room.

    Tracks active connections per group_id and handles message broadcasting.
    """

    def __init__(self):
        # group_id -> set of websockets
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, group_id: str) -> bool:
        """
        Accept and register a new WebSocket connection.

        Args:
            websocket: The WebSocket connection to register
            group_id: The group room this connection joins

        Returns:
            True if connection was accepted, False otherwise
        """
        try:
            await websocket.accept()

            async with self._lock:
                self.active_connections.setdefault(group_id, set()).add(websocket)
                count = len(self.active_connections[group_id])

            logger.info(f"WebSocket connected to group {group_id}. Total connections: {count}")
            return True

        except Exception as e:
            logger.error(f"Failed to accept WebSocket connection for group {group_id}: {e}")
            return False

    async def disconnect(self, websocket: WebSocket, group_id: str) -> None:
        """Unregister and close a WebSocket connection."""
        async with self._lock:
            if group_id in self.active_connections:
                self.active_connections[group_id].discard(websocket)

                if not self.active_connections[group_id]:
                    del self.active_connections[group_id]
                    logger.info(f"No more connections for group {group_id}, cleaned up")

        try:
            await websocket.close()
        except Exception:
            pass  # already closed by the client

    async def broadcast_to_group(self, group_id: str, data: dict) -> int:
        """
        Send an event to all clients in a group room.

        Returns:
            Number of clients that received the message
        """
        async with self._lock:
            connections = set(self.active_connections.get(group_id, ()))
        if not connections:
            return 0

        message = json.dumps(data)
        disconnected: Set[WebSocket] = set()
        sent_count = 0

        for connection in connections:
            try:
                await connection.send_text(message)
                sent_count += 1
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket in group {group_id}: {e}")
                disconnected.add(connection)

        if disconnected:
            async with self._lock:
                room = self.active_connections.get(group_id)
                if room is not None:
                    room -= disconnected
                    if not room:
                        del self.active_connections[group_id]
            logger.info(f"Dropped {len(disconnected)} dead connections from group {group_id}")

        return sent_count

    async def send_to_client(self, websocket: WebSocket, data: dict) -> bool:
        try:
            await websocket.send_json(data)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to specific WebSocket: {e}")
            return False

    def get_connection_count(self, group_id: Optional[str] = None) -> int:
        """Active connections for one group, or for all groups when None."""
        if group_id:
            return len(self.active_connections.get(group_id, set()))
        return sum(len(conns) for conns in self.active_connections.values())

    def get_active_groups(self) -> List[str]:
        return sorted(self.active_connections)


# Global connection manager instance
manager = ConnectionManager()


def _message(message_type: str, **fields) -> dict:
    return {"type": message_type, **fields, "timestamp": utcnow().isoformat()}


def build_connected_message(group_id: str) -> dict:
    return _message("connected", group_id=group_id)


def build_error_message(group_id: str, error_code: str, message: str) -> dict:
    """
    Error frame sent to a single client.

    error_code is meant for programmatic handling, message for humans.
    """
    return _message("error", group_id=group_id, error_code=error_code, message=message)


def build_pong_message() -> dict:
    return _message("pong")
