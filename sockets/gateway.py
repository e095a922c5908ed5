"""
Socket.IO event handlers.

Client -> server: ``sendMessage`` {conversationId, text, recipientId}
Server -> client: ``receiveMessage`` (populated message),
                  ``newNotification`` (notification record),
                  ``messageRejected`` (only with SOCKET_EMIT_REJECTIONS=true)
"""

import logging
from urllib.parse import parse_qsl

import socketio.exceptions
from pydantic import ValidationError

from config import SOCKET_EMIT_REJECTIONS
from models.chat import SendMessagePayload
from utils.auth import authenticate
from utils.errors import AuthenticationFailure, PassItPalError

logger = logging.getLogger("passitpal.realtime")

REJECTION_EVENT = "messageRejected"


def _token_from_handshake(environ: dict, auth) -> str | None:
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]
    params = dict(parse_qsl(environ.get("QUERY_STRING", "")))
    return params.get("token")


class RealtimeGateway:
    def __init__(self, store, registry, chat, emit_rejections: bool = SOCKET_EMIT_REJECTIONS):
        self.store = store
        self.registry = registry
        self.chat = chat
        self.emit_rejections = emit_rejections

    def attach(self, sio) -> None:
        sio.on("connect", self.connect)
        sio.on("disconnect", self.disconnect)
        sio.on("sendMessage", self.send_message)

    async def connect(self, sid, environ, auth=None):
        try:
            user, claims = await authenticate(self.store, _token_from_handshake(environ, auth))
        except AuthenticationFailure as e:
            logger.warning(f"Socket connection rejected: {sid} ({e.message})")
            raise socketio.exceptions.ConnectionRefusedError(f"Authentication error: {e.message}")
        await self.registry.join(sid, user["id"], expires_at=claims.get("exp"))
        logger.info(f"Socket connected: {sid} for user: {user.get('email') or user['id']}")

    async def disconnect(self, sid, *args):
        session = await self.registry.leave(sid)
        if session:
            logger.info(f"Socket disconnected: {sid} for user: {session.user_id}")

    async def send_message(self, sid, data):
        """Relay one chat message. Failures stay inside this connection."""
        try:
            user_id = self.registry.user_for(sid)
            if not user_id:
                logger.error(f"User not authenticated for sendMessage event: {sid}")
                return
            user = await self.store.find_user_by_id(user_id)
            if not user:
                logger.error(f"User {user_id} vanished before sendMessage: {sid}")
                return
            payload = SendMessagePayload.model_validate(data or {})
            await self.chat.send_message(
                user, payload.conversation_id, payload.text, payload.recipient_id
            )
        except (PassItPalError, ValidationError) as e:
            reason = e.message if isinstance(e, PassItPalError) else "Invalid message payload."
            logger.warning(f"Dropped sendMessage from {sid}: {reason}")
            if self.emit_rejections:
                await self.registry.emit_to_connection(sid, REJECTION_EVENT, {"message": reason})
        except Exception:
            logger.exception(f"Error handling sendMessage for {sid}")
