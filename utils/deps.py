"""
FastAPI dependencies. Services live on ``app.state`` (see server.create_app)
so tests can build an app around their own store.
"""

from fastapi import Depends, Header, Request

from utils.auth import authenticate, token_from_header
from utils.errors import Forbidden


def get_store(request: Request):
    return request.app.state.store


def get_order_engine(request: Request):
    return request.app.state.orders


def get_chat_relay(request: Request):
    return request.app.state.chat


def get_dispatcher(request: Request):
    return request.app.state.dispatcher


async def get_current_user(
    authorization: str = Header(default=None),
    store=Depends(get_store),
) -> dict:
    user, _ = await authenticate(store, token_from_header(authorization))
    return user


def require_role(*roles: str):
    async def _check(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise Forbidden(f"User role {user.get('role') or 'unknown'} is not authorized to access this route")
        return user

    return _check
