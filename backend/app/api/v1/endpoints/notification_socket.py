"""
Notification WebSocket Endpoint

Connection URL: WS /api/v1/ws?token=<access jwt>
(an ``Authorization: Bearer`` header is accepted as well)

Client events:
- ping: Keep-alive, answered with pong

Server events:
- connected: Sent once the socket is registered
- notification: A new notification for the user
"""

import json
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from sqlalchemy import select

from app.core.database import get_session_local
from app.core.exceptions import UnauthorizedError
from app.core.logging_config import logger
from app.core.security import decode_token
from app.models.user import User, UserStatus
from app.services.notification_websocket import notification_ws_manager

router = APIRouter()


def _extract_token(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


async def get_user_from_token(token: str) -> Optional[User]:
    """Resolve the socket user from an access token; expiry is not enforced for the handshake"""
    try:
        payload = decode_token(token, verify_exp=False)
        user_id = int(payload.get("sub"))
    except (UnauthorizedError, TypeError, ValueError):
        return None
    if payload.get("type") != "access":
        logger.warning(f"[Socket] Rejected {payload.get('type')} token for user {user_id}")
        return None

    async with get_session_local()() as db:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()

    if not user or user.is_deleted or user.status != UserStatus.ACTIVE:
        return None
    return user


@router.websocket("/ws")
async def notification_websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None)
):
    raw_token = _extract_token(websocket, token)
    user = await get_user_from_token(raw_token) if raw_token else None
    if not user:
        await websocket.close(code=4001, reason="Invalid or missing token")
        return

    connection = await notification_ws_manager.connect(websocket, user.id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict):
                await notification_ws_manager.handle_message(connection, message)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[Socket] Connection error for user {user.id}: {e}")
    finally:
        await notification_ws_manager.disconnect(connection)
