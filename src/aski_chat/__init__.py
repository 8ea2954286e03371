"""Aski chat client: REST and Socket.IO transports plus a synchronized chat store."""

from aski_chat.client import Client
from aski_chat.config import ChatSettings
from aski_chat.errors import AskiHTTPError, AskiNetworkError, AskiSocketError
from aski_chat.realtime import SocketClient
from aski_chat.store import ChatStore

__all__ = [
    "AskiHTTPError",
    "AskiNetworkError",
    "AskiSocketError",
    "ChatSettings",
    "ChatStore",
    "Client",
    "SocketClient",
]
