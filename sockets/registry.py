"""
Session registry: which authenticated user owns which Socket.IO connection.

Each user gets a room named after their user id, so every device or tab the
user has open receives the same push. The registry keeps its own view of the
membership (guarded by an asyncio.Lock) so it can answer "is this user
online?" and revalidate long-lived sessions without asking Socket.IO.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("passitpal.realtime")


@dataclass
class Session:
    sid: str
    user_id: str
    expires_at: Optional[float] = None  # unix timestamp from the token's exp claim
    connected_at: float = 0.0


class SessionRegistry:
    def __init__(self, sio):
        self._sio = sio
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}
        self._rooms: dict[str, set[str]] = {}
        self._revalidate_task: Optional[asyncio.Task] = None

    @staticmethod
    def room_for(user_id: str) -> str:
        return user_id

    async def join(self, sid: str, user_id: str, expires_at: Optional[float] = None) -> Session:
        """Register an authenticated connection and put it in the user's room."""
        session = Session(sid=sid, user_id=user_id, expires_at=expires_at, connected_at=time.time())
        async with self._lock:
            self._sessions[sid] = session
            self._rooms.setdefault(user_id, set()).add(sid)
        await self._sio.enter_room(sid, self.room_for(user_id))
        logger.info(f"Session joined: sid={sid} user={user_id}")
        return session

    async def leave(self, sid: str) -> Optional[Session]:
        """Forget one connection. Other connections of the same user stay."""
        async with self._lock:
            session = self._sessions.pop(sid, None)
            if session is None:
                return None
            sids = self._rooms.get(session.user_id)
            if sids is not None:
                sids.discard(sid)
                if not sids:
                    del self._rooms[session.user_id]
        logger.info(f"Session left: sid={sid} user={session.user_id}")
        return session

    def user_for(self, sid: str) -> Optional[str]:
        session = self._sessions.get(sid)
        return session.user_id if session else None

    def connections_for(self, user_id: str) -> set[str]:
        return set(self._rooms.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        return bool(self._rooms.get(user_id))

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def deliver_to_user(self, user_id: str, event: str, payload: dict) -> bool:
        """Best-effort push to every connection of a user.

        Returns False when the user is offline or the emit failed; nothing is
        queued for later delivery.
        """
        if not self.is_online(user_id):
            return False
        try:
            await self._sio.emit(event, payload, room=self.room_for(user_id))
            return True
        except Exception:
            logger.exception(f"Failed to deliver {event} to user {user_id}")
            return False

    async def emit_to_connection(self, sid: str, event: str, payload: dict) -> None:
        try:
            await self._sio.emit(event, payload, to=sid)
        except Exception:
            logger.exception(f"Failed to emit {event} to sid {sid}")

    # ─── Revalidation ─────────────────────────────────────────────────────────

    async def revalidate(self, is_user_allowed: Callable[[str], Awaitable[bool]]) -> list[str]:
        """Disconnect sessions whose token expired or whose user is no longer allowed.

        Returns the sids that were disconnected.
        """
        now = time.time()
        stale = []
        allowed_cache: dict[str, bool] = {}
        for session in list(self._sessions.values()):
            if session.expires_at is not None and session.expires_at <= now:
                stale.append(session.sid)
                continue
            if session.user_id not in allowed_cache:
                try:
                    allowed_cache[session.user_id] = await is_user_allowed(session.user_id)
                except Exception:
                    logger.exception(f"Revalidation lookup failed for user {session.user_id}")
                    allowed_cache[session.user_id] = True
            if not allowed_cache[session.user_id]:
                stale.append(session.sid)

        for sid in stale:
            session = await self.leave(sid)
            try:
                await self._sio.disconnect(sid)
            except Exception:
                logger.exception(f"Failed to disconnect stale sid {sid}")
            if session:
                logger.warning(f"Disconnected stale session sid={sid} user={session.user_id}")
        return stale

    def start_revalidation(self, interval: int, is_user_allowed: Callable[[str], Awaitable[bool]]) -> None:
        if interval <= 0 or self._revalidate_task is not None:
            return

        async def _loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.revalidate(is_user_allowed)
                except Exception:
                    logger.exception("Session revalidation pass failed")

        self._revalidate_task = asyncio.create_task(_loop())

    async def close(self) -> None:
        """Stop revalidation and drop every session (process shutdown)."""
        if self._revalidate_task is not None:
            self._revalidate_task.cancel()
            try:
                await self._revalidate_task
            except asyncio.CancelledError:
                pass
            self._revalidate_task = None
        async with self._lock:
            self._sessions.clear()
            self._rooms.clear()
