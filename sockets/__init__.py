from sockets.registry import Session, SessionRegistry
from sockets.gateway import RealtimeGateway
