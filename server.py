"""
PassItPal - Fitness Pass Marketplace
Main FastAPI application: order, notification and chat routers plus the
Socket.IO server used for realtime chat and notification push.

Run with:
    uvicorn server:asgi_app --reload --host 0.0.0.0 --port 5000

Services: Order, Notification, Chat (REST + Socket.IO)
"""

import sys
import pathlib

# Ensure the backend directory is on sys.path so that imports work when
# running from any working directory.
_backend_dir = str(pathlib.Path(__file__).parent)
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from config import (
    APP_NAME,
    APP_VERSION,
    APP_DESCRIPTION,
    CLIENT_URL,
    DEBUG,
    LOG_LEVEL,
    SOCKET_REAUTH_INTERVAL_SECONDS,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("passitpal")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if response.status_code >= 400:
            logger.warning(
                f"[{response.status_code}] {request.method} {request.url}"
            )
        return response


from sockets import RealtimeGateway, SessionRegistry
from routers.chat_service import router as chat_router
from routers.notification_service import router as notification_router
from routers.order_service import router as order_router
from services.chat import ChatRelay
from services.notifications import NotificationDispatcher
from services.orders import OrderEngine
from stores import build_store
from utils.errors import PassItPalError


def _wire_services(app: FastAPI, store) -> None:
    """Build the services around a store and publish them on app.state."""
    registry = app.state.registry
    dispatcher = NotificationDispatcher(store, registry)
    chat = ChatRelay(store, registry, dispatcher)
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.orders = OrderEngine(store, dispatcher)
    app.state.chat = chat
    app.state.gateway = RealtimeGateway(store, registry, chat)
    app.state.gateway.attach(app.state.sio)


async def _user_still_allowed(app: FastAPI, user_id: str) -> bool:
    user = await app.state.store.find_user_by_id(user_id)
    return bool(user) and not user.get("is_blocked")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.store is None:
        _wire_services(app, await build_store())
    registry = app.state.registry
    registry.start_revalidation(
        SOCKET_REAUTH_INTERVAL_SECONDS,
        lambda user_id: _user_still_allowed(app, user_id),
    )
    logger.info(f"{APP_NAME} v{APP_VERSION} started")
    yield
    await registry.close()
    logger.info(f"{APP_NAME} stopped")


def create_app(store=None, sio=None) -> FastAPI:
    # ─── Application ──────────────────────────────────────────────────────────

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        description=APP_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if sio is None:
        sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=[CLIENT_URL],
            logger=DEBUG,
            engineio_logger=False,
        )
    app.state.sio = sio
    app.state.registry = SessionRegistry(sio)
    app.state.store = None
    if store is not None:
        _wire_services(app, store)

    # ─── Middleware ───────────────────────────────────────────────────────────

    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Error Handling ───────────────────────────────────────────────────────

    @app.exception_handler(PassItPalError)
    async def passitpal_error_handler(request: Request, exc: PassItPalError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # ─── Include Routers ──────────────────────────────────────────────────────

    app.include_router(order_router, tags=["Order Service"])
    app.include_router(notification_router, tags=["Notification Service"])
    app.include_router(chat_router, tags=["Chat Service"])

    # ─── Root & Health ────────────────────────────────────────────────────────

    @app.get("/", tags=["Health"])
    def root():
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "status": "running",
            "message": "PassItPal Backend API is running!",
            "docs": "/docs",
            "services": [
                {"name": "Order Service", "prefix": "/api/orders"},
                {"name": "Notification Service", "prefix": "/api/notifications"},
                {"name": "Chat Service", "prefix": "/api/messages, /socket.io"},
            ],
        }

    @app.get("/health", tags=["Health"])
    def health_check():
        return {
            "status": "healthy",
            "version": APP_VERSION,
            "connected_sessions": app.state.registry.session_count,
        }

    return app


app = create_app()

# Socket.IO in front, everything else falls through to FastAPI
asgi_app = socketio.ASGIApp(app.state.sio, other_asgi_app=app)


# ─── Run directly ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server:asgi_app", host="0.0.0.0", port=5000, reload=True)
