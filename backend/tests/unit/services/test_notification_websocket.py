"""
Unit Tests for realtime notification delivery
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.notification_socket import get_user_from_token
from app.core.security import create_access_token, create_ebook_access_token, create_refresh_token
from app.models.notification import NotificationType
from app.models.user import User
from app.services.notification_service import notification_service
from app.services.notification_websocket import (
    EventType,
    NotificationWebSocketManager,
    notification_ws_manager,
    publish_notification,
)


def fake_socket() -> MagicMock:
    socket = MagicMock()
    socket.accept = AsyncMock()
    socket.send_json = AsyncMock()
    return socket


class TestConnections:

    @pytest.mark.asyncio
    async def test_several_sockets_per_user(self):
        manager = NotificationWebSocketManager()
        first, second = fake_socket(), fake_socket()

        conn = await manager.connect(first, 1)
        await manager.connect(second, 1)

        assert manager.connection_count(1) == 2
        first.send_json.assert_awaited_once()
        assert first.send_json.await_args.args[0]["type"] == "connected"

        delivered = await manager.push_notification(1, {"id": 5, "title": "Hello"})
        assert delivered == 2
        pushed = second.send_json.await_args.args[0]
        assert pushed["type"] == "notification"
        assert pushed["data"] == {"id": 5, "title": "Hello"}

        await manager.disconnect(conn)
        assert manager.connection_count(1) == 1

    @pytest.mark.asyncio
    async def test_ping_pong(self):
        manager = NotificationWebSocketManager()
        socket = fake_socket()
        conn = await manager.connect(socket, 3)

        await manager.handle_message(conn, {"type": "ping"})

        socket.send_json.assert_awaited_with({"type": "pong"})

    @pytest.mark.asyncio
    async def test_dead_socket_dropped(self):
        manager = NotificationWebSocketManager()
        socket = fake_socket()
        await manager.connect(socket, 4)
        socket.send_json.side_effect = RuntimeError("closed")

        delivered = await manager.send_to_user(4, EventType.NOTIFICATION, {})

        assert delivered == 0
        assert not manager.is_online(4)

    @pytest.mark.asyncio
    async def test_offline_user(self):
        assert await NotificationWebSocketManager().push_notification(99, {}) == 0


class TestPublishing:

    @pytest.mark.asyncio
    async def test_direct_push_without_pubsub(self):
        with patch.object(notification_ws_manager, "push_notification", new=AsyncMock(return_value=1)) as push:
            await publish_notification(8, {"id": 1})

        push.assert_awaited_once_with(8, {"id": 1})

    @pytest.mark.asyncio
    async def test_created_notification_reaches_socket(self, db_session: AsyncSession, reader_user: User):
        socket = fake_socket()
        conn = await notification_ws_manager.connect(socket, reader_user.id)
        try:
            notification = await notification_service.create_notification(
                db_session, reader_user.id, "Books Borrowed", "You borrowed 1 book", NotificationType.SYSTEM
            )
        finally:
            await notification_ws_manager.disconnect(conn)

        event = socket.send_json.await_args.args[0]
        assert event["type"] == "notification"
        assert event["data"]["id"] == notification.id
        assert event["data"]["title"] == "Books Borrowed"


class TestSocketAuthentication:
    """Handshake token checks for WS /api/v1/ws"""

    @pytest.mark.asyncio
    async def test_access_token_accepted(self, reader_user: User):
        user = await get_user_from_token(create_access_token({"sub": str(reader_user.id)}))

        assert user.id == reader_user.id

    @pytest.mark.asyncio
    async def test_expired_access_token_still_accepted(self, reader_user: User):
        token = create_access_token({"sub": str(reader_user.id)}, expires_delta=timedelta(minutes=-5))

        assert (await get_user_from_token(token)).id == reader_user.id

    @pytest.mark.asyncio
    async def test_ebook_token_rejected(self, reader_user: User):
        token, _ = create_ebook_access_token(reader_user.id, 1, 1)

        assert await get_user_from_token(token) is None

    @pytest.mark.asyncio
    async def test_refresh_token_rejected(self, reader_user: User):
        token, _, _ = create_refresh_token(reader_user.id)

        assert await get_user_from_token(token) is None

    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self):
        assert await get_user_from_token("not-a-jwt") is None
