# ============================================================================
#  File: event_stream.py
#  Purpose: Broadcasts orchestration and budget events to WebSocket clients
# ============================================================================
# SECTION 1: Global Variable Definitions & Imports
# ============================================================================

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, List

from fastapi import WebSocket
from loguru import logger

# ============================================================================
# SECTION 2: Class Definition - EventStream
# ============================================================================

class EventStream:
    """
    Registry of connected WebSocket clients. Events are JSON objects with a
    ``type``, a ``timestamp`` and event-specific fields.
    """
    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._lock = asyncio.Lock()

    @staticmethod
    def _describe(websocket: WebSocket) -> str:
        return f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown_client"

    # ========================================================================
    # Async Function 2.1: connect
    # ========================================================================
    async def connect(self, websocket: WebSocket) -> None:
        """Accepts a WebSocket connection and starts streaming events to it."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)
        logger.info(f"Event stream client connected: {self._describe(websocket)}")

    # =========================================================================
    # Async Function 2.2: disconnect
    # =========================================================================
    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)
                logger.info(f"Event stream client disconnected: {self._describe(websocket)}")

    # =========================================================================
    # Async Function 2.3: disconnect_all
    # =========================================================================
    async def disconnect_all(self) -> None:
        async with self._lock:
            connections = list(self.active_connections)
            self.active_connections.clear()
        for websocket in connections:
            await websocket.close(code=1000)

    # =========================================================================
    # Async Function 2.4: send_message_to_client
    # =========================================================================
    async def send_message_to_client(self, message: str) -> int:
        """
        Sends a text frame to every client, dropping connections that fail.

        Returns:
            int: Number of clients the message reached
        """
        if not message:
            logger.warning("Attempted to send empty message to event stream clients")
            return 0

        delivered = 0
        dead = []
        async with self._lock:
            for connection in self.active_connections:
                try:
                    await connection.send_text(message)
                    delivered += 1
                except Exception as e:
                    logger.error(f"Failed to send event to {self._describe(connection)}: {e}")
                    dead.append(connection)

            if dead:
                logger.warning(f"Removing {len(dead)} dead event stream connections")
                for connection in dead:
                    self.active_connections.remove(connection)
        return delivered

    # =========================================================================
    # Async Function 2.5: publish
    # =========================================================================
    async def publish(self, event_type: str, **fields: Any) -> int:
        """Serializes an event and broadcasts it."""
        event = {
            "type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **fields,
        }
        return await self.send_message_to_client(json.dumps(event, default=str))

#
#
## End of Script
