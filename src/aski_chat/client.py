"""High-level Aski chat client composing HTTP, socket, REST API and store."""

from __future__ import annotations

from typing import Any

from aski_chat.api.chats import ChatsAPI
from aski_chat.config import ChatSettings
from aski_chat.http import HTTPClient
from aski_chat.models.users import User
from aski_chat.notifications import Notifier
from aski_chat.realtime import SocketClient
from aski_chat.store import ChatStore
from aski_chat.throttle import ReadThrottle


class Client:
    """Top-level client.

    Usage::

        async with Client("http://localhost:8000", token, user_id) as client:
            await client.start()
            await client.store.select_chat(client.store.chats[0])
            await client.store.send_message("hello")
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        current_user: User | str,
        *,
        timeout: float = 30.0,
        notifier: Notifier | None = None,
        settings: ChatSettings | None = None,
    ) -> None:
        self.settings = settings or ChatSettings(api_url=base_url, timeout=timeout)
        self.http = HTTPClient(base_url, token, timeout=timeout)
        self.chats = ChatsAPI(self.http, self.settings.api_prefix)
        self.socket = SocketClient(
            base_url,
            token,
            path=self.settings.socket_path,
            transports=self.settings.socket_transports,
            reconnection_attempts=self.settings.reconnection_attempts,
            reconnection_delay=self.settings.reconnection_delay,
        )
        self.store = ChatStore(
            self.chats,
            self.socket,
            current_user,
            notifier=notifier,
            throttle=ReadThrottle(self.settings.read_debounce_seconds),
            chat_page_size=self.settings.chat_page_size,
            message_page_size=self.settings.message_page_size,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ChatSettings,
        token: str,
        current_user: User | str,
        **kwargs: Any,
    ) -> Client:
        return cls(
            settings.api_url,
            token,
            current_user,
            timeout=settings.timeout,
            settings=settings,
            **kwargs,
        )

    async def start(self, *, connect: bool = True) -> None:
        """Attach the store, load chats, and (optionally) open the socket."""
        await self.store.attach()
        await self.store.load()
        if connect:
            await self.socket.connect()

    # --- Context manager ---

    async def close(self) -> None:
        self.store.detach()
        if self.socket.connected:
            await self.socket.close()
        await self.http.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
