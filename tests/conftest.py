"""
Shared fixtures: an in-memory store seeded with a few users and listings,
a recording stand-in for the Socket.IO server, and the services wired
around them.
"""

import pytest
from fastapi.testclient import TestClient

from sockets.gateway import RealtimeGateway
from sockets.registry import SessionRegistry
from server import create_app
from services.chat import ChatRelay
from services.notifications import NotificationDispatcher
from services.orders import OrderEngine
from stores.memory_store import MemoryStore
from utils.auth import create_access_token

BUYER = "USR-buyer"
BUYER_2 = "USR-buyer2"
SELLER = "USR-seller"
SELLER_2 = "USR-seller2"
BLOCKED = "USR-blocked"
LISTING = "LST-elite"
LISTING_2 = "LST-pro"


class RecordingSocketServer:
    """Records what the registry asks Socket.IO to do."""

    def __init__(self):
        self.handlers = {}
        self.rooms: dict[str, set[str]] = {}
        self.emitted: list[tuple[str, dict, str]] = []
        self.disconnected: list[str] = []
        self.fail_emit = False

    def on(self, event, handler):
        self.handlers[event] = handler

    async def enter_room(self, sid, room, namespace=None):
        self.rooms.setdefault(sid, set()).add(room)

    async def emit(self, event, data=None, to=None, room=None, **kwargs):
        if self.fail_emit:
            raise RuntimeError("transport down")
        self.emitted.append((event, data, to or room))

    async def disconnect(self, sid, namespace=None):
        self.disconnected.append(sid)

    def sent(self, target, event=None):
        return [data for (e, data, t) in self.emitted if t == target and (event is None or e == event)]


def seed(store: MemoryStore) -> MemoryStore:
    store.add_user(id=BUYER, username="bella", email="bella@example.com", role="buyer")
    store.add_user(id=BUYER_2, username="bruno", email="bruno@example.com", role="buyer")
    store.add_user(id=SELLER, username="sam", email="sam@example.com", role="seller")
    store.add_user(id=SELLER_2, username="sofia", email="sofia@example.com", role="seller")
    store.add_user(id=BLOCKED, username="blocky", email="blocky@example.com", role="buyer", is_blocked=True)
    store.add_listing(id=LISTING, seller_id=SELLER, title="Cult Elite 3 months", asking_price=4500)
    store.add_listing(id=LISTING_2, seller_id=SELLER, title="Cult Pro 1 month", asking_price=1200)
    return store


@pytest.fixture
def store():
    return seed(MemoryStore())


@pytest.fixture
def sio():
    return RecordingSocketServer()


@pytest.fixture
def registry(sio):
    return SessionRegistry(sio)


@pytest.fixture
def dispatcher(store, registry):
    return NotificationDispatcher(store, registry)


@pytest.fixture
def engine(store, dispatcher):
    return OrderEngine(store, dispatcher)


@pytest.fixture
def chat(store, registry, dispatcher):
    return ChatRelay(store, registry, dispatcher)


@pytest.fixture
def gateway(store, registry, chat):
    return RealtimeGateway(store, registry, chat, emit_rejections=False)


@pytest.fixture
def client(store, sio):
    app = create_app(store=store, sio=sio)
    with TestClient(app) as c:
        yield c


def token_for(user_id: str, role: str, expires_minutes: int = 60) -> str:
    return create_access_token(user_id, role, expires_minutes=expires_minutes)


def auth(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {token_for(user_id, role)}"}
