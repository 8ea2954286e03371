"""Socket.IO client: connection state, typed event dispatch, and chat actions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

import socketio

from aski_chat.errors import AskiSocketError
from aski_chat.models.events import INBOUND_EVENTS, ServerError, SocketEvent, parse_event

log = logging.getLogger(__name__)

EventHandler = Callable[[SocketEvent], Coroutine[Any, Any, None]]
ConnectionListener = Callable[[bool], Coroutine[Any, Any, None]]


class SocketClient:
    """Manages the Socket.IO connection to the Aski chat server.

    Usage::

        sock = SocketClient("http://localhost:8000", token)

        @sock.on("new_message")
        async def on_message(event):
            print(event.message.content)

        await sock.connect()
        await sock.wait()
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        path: str = "socket.io",
        transports: Iterable[str] = ("websocket", "polling"),
        reconnection_attempts: int = 5,
        reconnection_delay: float = 1.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._token = token
        self._path = path
        self._transports = list(transports)
        self._sio = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
        )
        self._handlers: dict[str, list[EventHandler]] = {}
        self._connection_listeners: list[ConnectionListener] = []
        self._connected = False

        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on("connect_error", self._on_connect_error)
        for name in INBOUND_EVENTS:
            self._sio.on(name, self._make_receiver(name))

    # --- Registration ---

    def on(self, event_type: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator to register an event handler."""
        def decorator(func: EventHandler) -> EventHandler:
            self._handlers.setdefault(event_type, []).append(func)
            return func
        return decorator

    def add_handler(self, event_type: str, handler: EventHandler) -> None:
        """Register an event handler programmatically."""
        self._handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        """Register a callback invoked with the new state on every connect/disconnect."""
        self._connection_listeners.append(listener)

    def remove_connection_listener(self, listener: ConnectionListener) -> None:
        if listener in self._connection_listeners:
            self._connection_listeners.remove(listener)

    @property
    def connected(self) -> bool:
        return self._connected

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Open the connection. Reconnection is handled by python-socketio."""
        await self._sio.connect(
            self._url,
            auth={"token": self._token},
            transports=self._transports,
            socketio_path=self._path,
        )

    async def wait(self) -> None:
        """Block until the connection is closed for good."""
        await self._sio.wait()

    async def close(self) -> None:
        """Cleanly close the connection."""
        await self._sio.disconnect()

    # --- Actions ---

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        """Emit a client event. Fire-and-forget: no acknowledgement is awaited."""
        if not self._connected:
            raise AskiSocketError(f"Not connected, cannot emit {event}")
        await self._sio.emit(event, data)

    async def send_message(
        self, chat_id: str, content: str, reply_to: str | None = None
    ) -> None:
        data: dict[str, Any] = {"chatId": chat_id, "content": content, "type": "text"}
        if reply_to is not None:
            data["replyTo"] = reply_to
        await self.emit("send_message", data)

    async def join_chat(self, chat_id: str) -> None:
        await self.emit("join_chat", {"chatId": chat_id})

    async def leave_chat(self, chat_id: str) -> None:
        await self.emit("leave_chat", {"chatId": chat_id})

    async def start_typing(self, chat_id: str) -> None:
        await self.emit("typing_start", {"chatId": chat_id})

    async def stop_typing(self, chat_id: str) -> None:
        await self.emit("typing_stop", {"chatId": chat_id})

    async def mark_as_read(self, chat_id: str) -> None:
        await self.emit("mark_messages_read", {"chatId": chat_id})

    # --- Internals ---

    async def _on_connect(self) -> None:
        log.info("Connected to chat server at %s", self._url)
        await self._set_connected(True)

    async def _on_disconnect(self, *args: Any) -> None:
        log.info("Disconnected from chat server%s", f" ({args[0]})" if args else "")
        await self._set_connected(False)

    async def _on_connect_error(self, data: Any = None) -> None:
        log.warning("Chat server connection error: %s", data)
        await self._set_connected(False)

    async def _set_connected(self, value: bool) -> None:
        if value == self._connected:
            return
        self._connected = value
        for listener in list(self._connection_listeners):
            try:
                await listener(value)
            except Exception:
                log.exception("Error in connection listener")

    def _make_receiver(self, name: str) -> Callable[..., Coroutine[Any, Any, None]]:
        async def receiver(*args: Any) -> None:
            await self._receive(name, args[0] if args else None)
        return receiver

    async def _receive(self, name: str, data: Any) -> None:
        try:
            event = parse_event(name, data)
        except ValueError:
            log.debug("Dropping malformed %s payload: %r", name, data)
            return
        if isinstance(event, ServerError):
            log.warning("Chat server error: %s", event.message)
        await self._dispatch(event)

    async def _dispatch(self, event: SocketEvent) -> None:
        handlers = self._handlers.get(event.type, [])
        wildcard = self._handlers.get("*", [])
        for handler in [*handlers, *wildcard]:
            try:
                await handler(event)
            except Exception:
                log.exception("Error in event handler for %s", event.type)
