"""
Notification WebSocket Manager

Tracks the open sockets of each user and pushes realtime events:
- New notifications
- Keep-alive ping/pong

A user may have several sockets open (one per browser tab). Notifications
created in a Celery worker reach this process through the Redis pub/sub
bridge started in app.main.
"""

import asyncio
from typing import Dict, List, Any
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from fastapi import WebSocket

from app.core.config import settings
from app.core.logging_config import logger
from app.core.redis_client import redis_client


class EventType(str, Enum):
    """WebSocket event types"""
    CONNECTED = "connected"
    NOTIFICATION = "notification"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


@dataclass
class UserConnection:
    """Represents one WebSocket connection of a user"""
    websocket: WebSocket
    user_id: int
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)


class NotificationWebSocketManager:
    """
    Manages WebSocket connections for realtime notifications.

    Handles multiple connections per user.
    """

    def __init__(self):
        # user_id -> open connections
        self._connections: Dict[int, List[UserConnection]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: int) -> UserConnection:
        """Accept and register a connection"""
        await websocket.accept()
        connection = UserConnection(websocket=websocket, user_id=user_id)

        async with self._lock:
            self._connections.setdefault(user_id, []).append(connection)

        logger.info(f"[Socket] User {user_id} connected ({self.connection_count(user_id)} open)")

        await self._send(connection, EventType.CONNECTED, {"user_id": user_id})
        return connection

    async def disconnect(self, connection: UserConnection):
        """Remove a connection"""
        async with self._lock:
            connections = self._connections.get(connection.user_id, [])
            if connection in connections:
                connections.remove(connection)
            if not connections:
                self._connections.pop(connection.user_id, None)

        logger.info(f"[Socket] User {connection.user_id} disconnected")

    def connection_count(self, user_id: int) -> int:
        return len(self._connections.get(user_id, []))

    def is_online(self, user_id: int) -> bool:
        return self.connection_count(user_id) > 0

    async def _send(self, connection: UserConnection, event_type: EventType, data: Any) -> bool:
        message = {
            "type": event_type.value,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }
        try:
            await connection.websocket.send_json(message)
            connection.last_activity = datetime.utcnow()
            return True
        except Exception as e:
            logger.error(f"[Socket] Error sending to user {connection.user_id}: {e}")
            return False

    async def send_to_user(self, user_id: int, event_type: EventType, data: Any) -> int:
        """Send a message to every open connection of a user. Returns the number delivered."""
        connections = list(self._connections.get(user_id, []))
        delivered = 0
        dead: List[UserConnection] = []

        for connection in connections:
            if await self._send(connection, event_type, data):
                delivered += 1
            else:
                dead.append(connection)

        # Connection might be dead, clean up
        for connection in dead:
            await self.disconnect(connection)

        return delivered

    async def push_notification(self, user_id: int, notification: Dict[str, Any]) -> int:
        return await self.send_to_user(user_id, EventType.NOTIFICATION, notification)

    async def handle_message(self, connection: UserConnection, message: Dict[str, Any]):
        """Handle a client message"""
        connection.last_activity = datetime.utcnow()
        if message.get("type") == EventType.PING.value:
            await connection.websocket.send_json({"type": EventType.PONG.value})


# Singleton instance
notification_ws_manager = NotificationWebSocketManager()


async def publish_notification(user_id: int, notification: Dict[str, Any]) -> None:
    """
    Deliver a notification event to the user's sockets.

    With the pub/sub bridge enabled the event goes through Redis so that every
    API process (and events raised in workers) reaches the right sockets.
    Otherwise it is pushed directly to this process's connections.
    """
    if settings.NOTIFICATION_PUBSUB_ENABLED:
        published = await redis_client.publish(
            settings.NOTIFICATION_CHANNEL,
            {"user_id": user_id, "notification": notification},
        )
        if published:
            return

    await notification_ws_manager.push_notification(user_id, notification)


async def run_pubsub_listener() -> None:
    """Forward notifications published on Redis to local sockets"""
    logger.info(f"[Socket] Listening for notifications on '{settings.NOTIFICATION_CHANNEL}'")
    async for payload in redis_client.subscribe(settings.NOTIFICATION_CHANNEL):
        user_id = payload.get("user_id")
        notification = payload.get("notification")
        if user_id is None or notification is None:
            continue
        await notification_ws_manager.push_notification(int(user_id), notification)
