"""In-memory chat state reconciled from REST fetches, user actions and socket events.

``ChatStore`` owns the session's mirror of the chat list, the selected
chat's messages, typing indicators and online users.  Three sources feed
it: REST refetches through :class:`~aski_chat.api.chats.ChatsAPI`, the
user's own actions, and inbound events from
:class:`~aski_chat.realtime.SocketClient`.  Every merge is keyed by id,
so redelivered or racing updates are harmless.

Usage::

    store = ChatStore(client.chats, client.socket, current_user_id)
    await store.attach()
    await store.load()
    await store.select_chat(store.chats[0])
    await store.send_message("hello")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING

from aski_chat.errors import AskiHTTPError, AskiNetworkError, AskiSocketError, describe_error
from aski_chat.models.chats import Chat, LastMessage
from aski_chat.models.enums import ChatType, MessageType
from aski_chat.models.events import (
    ChatUpdated,
    MessageDeleted,
    MessageEdited,
    MessagesRead,
    NewMessage,
    OnlineUsers,
    SocketEvent,
    TypingStarted,
    TypingStopped,
    UserOffline,
    UserOnline,
)
from aski_chat.models.messages import Message
from aski_chat.models.users import User
from aski_chat.notifications import LogNotifier, Notifier
from aski_chat.throttle import ReadThrottle

if TYPE_CHECKING:
    from aski_chat.api.chats import ChatsAPI, UploadFile
    from aski_chat.realtime import SocketClient

log = logging.getLogger(__name__)

# Malformed response bodies surface as pydantic ValidationError, a ValueError.
_REST_ERRORS = (AskiHTTPError, AskiNetworkError, ValueError)

SUBSCRIBED_EVENTS = (
    "new_message",
    "message_edited",
    "message_deleted",
    "user_typing",
    "user_stopped_typing",
    "user_online",
    "user_offline",
    "user_presence_updated",
    "online_users",
    "messages_read",
    "chat_updated",
)

CONNECTION_LOST = "Connection lost. Messages may be delayed."
CONNECTION_RESTORED = "Connection restored."

ChangeListener = Callable[[], None]


class ChatStore:
    """Single consistent view of chats and messages for the signed-in user."""

    def __init__(
        self,
        api: ChatsAPI,
        socket: SocketClient,
        current_user: User | str,
        *,
        notifier: Notifier | None = None,
        throttle: ReadThrottle | None = None,
        chat_page_size: int = 20,
        message_page_size: int = 50,
    ) -> None:
        self._api = api
        self._socket = socket
        self._user_id = current_user.id if isinstance(current_user, User) else current_user
        self._notifier = notifier or LogNotifier()
        self._throttle = throttle or ReadThrottle()
        self._chat_page_size = chat_page_size
        self._message_page_size = message_page_size

        self._selected: Chat | None = None
        self._chats: list[Chat] = []
        self._messages: list[Message] = []
        self._typing: dict[str, dict[str, User]] = {}
        self._online: dict[str, User] = {}

        self._joined_rooms: set[str] = set()
        self._last_connected: bool | None = None
        self._ever_connected = False
        self._loading_chats = False
        self._loading_messages = False
        self._listeners: list[ChangeListener] = []
        self._attached = False

    # --- State ---

    @property
    def current_user_id(self) -> str:
        return self._user_id

    @property
    def selected_chat(self) -> Chat | None:
        return self._selected

    @property
    def chats(self) -> list[Chat]:
        return list(self._chats)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def typing_users(self) -> dict[str, list[User]]:
        return {cid: list(users.values()) for cid, users in self._typing.items() if users}

    @property
    def online_users(self) -> list[User]:
        return list(self._online.values())

    @property
    def joined_rooms(self) -> frozenset[str]:
        return frozenset(self._joined_rooms)

    @property
    def is_connected(self) -> bool:
        return self._socket.connected

    @property
    def is_loading(self) -> bool:
        return self._loading_chats or self._loading_messages

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback run after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                log.exception("Error in chat store listener")

    # --- Lifecycle ---

    async def attach(self) -> None:
        """Subscribe to socket events and record the initial connection state."""
        if self._attached:
            return
        for name in SUBSCRIBED_EVENTS:
            self._socket.add_handler(name, self.handle_event)
        self._socket.add_connection_listener(self.handle_connection_change)
        self._attached = True
        await self.handle_connection_change(self._socket.connected)

    def detach(self) -> None:
        if not self._attached:
            return
        for name in SUBSCRIBED_EVENTS:
            self._socket.remove_handler(name, self.handle_event)
        self._socket.remove_connection_listener(self.handle_connection_change)
        self._attached = False

    async def load(self) -> None:
        """Initial fetch of the chat list."""
        await self.refresh_chats()

    # --- Actions ---

    async def select_chat(self, chat: Chat) -> None:
        if self._selected is not None and self._selected.id == chat.id:
            return
        previous = self._selected
        self._selected = self._find_chat(chat.id) or chat
        self._messages = []
        if previous is not None:
            self._typing.pop(previous.id, None)
        self._set_unread(chat.id, 0)
        self._changed()

        await self._request_mark_read(chat.id)
        await self.refresh_messages()

    def clear_selected_chat(self) -> None:
        if self._selected is not None:
            self._typing.pop(self._selected.id, None)
        self._selected = None
        self._messages = []
        self._changed()

    async def send_message(self, content: str, reply_to: str | None = None) -> None:
        chat = self._selected
        if chat is None or not content.strip():
            return

        if self._socket.connected:
            try:
                # The stored message comes back through the new_message event.
                await self._socket.send_message(chat.id, content, reply_to)
                return
            except AskiSocketError:
                log.warning("Socket dropped before send, falling back to REST")

        try:
            message = await self._api.send_message(chat.id, content, reply_to=reply_to)
        except _REST_ERRORS as exc:
            log.warning("Failed to send message to chat %s: %s", chat.id, exc)
            self._notifier.error(describe_error(exc, "Failed to send message"))
            return

        if self._selected is not None and self._selected.id == message.chat:
            self._append_message(message)
        chat_entry = self._find_chat(message.chat)
        if chat_entry is not None:
            self._replace_chat(
                chat_entry.model_copy(update={"last_message": _preview(message)}),
                to_front=True,
            )
        self._changed()

    async def send_file(self, file: UploadFile | str | Path, reply_to: str | None = None) -> None:
        chat = self._selected
        if chat is None:
            return
        try:
            await self._api.send_file(chat.id, file, reply_to=reply_to)
        except (*_REST_ERRORS, OSError) as exc:
            log.warning("Failed to send file to chat %s: %s", chat.id, exc)
            self._notifier.error(describe_error(exc, "Failed to send file"))
            return
        await self.refresh_messages()
        self._notifier.success("File sent successfully")

    async def mark_message_as_read(self) -> None:
        if self._selected is not None:
            await self._request_mark_read(self._selected.id)

    async def start_typing(self) -> None:
        await self._emit_typing(self._socket.start_typing)

    async def stop_typing(self) -> None:
        await self._emit_typing(self._socket.stop_typing)

    async def _emit_typing(self, emit: Callable[[str], Awaitable[None]]) -> None:
        if self._selected is None or not self._socket.connected:
            return
        try:
            await emit(self._selected.id)
        except AskiSocketError:
            log.debug("Typing signal dropped, socket not connected")

    async def refresh_chats(self) -> None:
        self._loading_chats = True
        try:
            response = await self._api.list(limit=self._chat_page_size)
        except _REST_ERRORS as exc:
            log.warning("Failed to refresh chats: %s", exc)
            return
        finally:
            self._loading_chats = False

        chats = response.chats
        if self._selected is not None:
            sid = self._selected.id
            chats = [c.model_copy(update={"unread_count": 0}) if c.id == sid else c for c in chats]
            self._selected = next((c for c in chats if c.id == sid), self._selected)
        self._chats = chats
        self._changed()
        await self._sync_rooms()

    async def refresh_messages(self) -> None:
        chat = self._selected
        if chat is None:
            return
        self._loading_messages = True
        try:
            response = await self._api.messages(chat.id, limit=self._message_page_size)
        except _REST_ERRORS as exc:
            log.warning("Failed to refresh messages for chat %s: %s", chat.id, exc)
            return
        finally:
            self._loading_messages = False

        if self._selected is None or self._selected.id != chat.id:
            log.debug("Discarding messages for chat %s, selection changed", chat.id)
            return
        self._messages = _merge_page(response.messages, self._messages, chat.id)
        self._changed()

    async def create_direct_chat(self, tutor_id: str) -> Chat:
        """Open (or reuse) a direct chat with ``tutor_id`` and select it."""
        existing = next(
            (
                c for c in self._chats
                if c.type == ChatType.direct and c.has_participant(tutor_id)
            ),
            None,
        )
        if existing is not None:
            await self.select_chat(existing)
            return existing

        chat = await self._api.create_direct(tutor_id)
        self._chats = [chat, *(c for c in self._chats if c.id != chat.id)]
        self._changed()
        await self.select_chat(chat)
        await self.refresh_chats()
        return chat

    # --- Read marking ---

    async def _request_mark_read(self, chat_id: str) -> bool:
        """Mark ``chat_id`` read unless debounced. Returns True if a request went out."""
        if not self._throttle.try_acquire(chat_id):
            log.debug("Read mark for chat %s suppressed", chat_id)
            return False

        self._stamp_read_locally(chat_id)
        success = False
        try:
            if self._socket.connected:
                await self._socket.mark_as_read(chat_id)
            else:
                await self._api.mark_read(chat_id)
            success = True
        except AskiSocketError:
            log.debug("Read mark for chat %s dropped, socket not connected", chat_id)
        except _REST_ERRORS as exc:
            log.warning("Failed to mark chat %s as read: %s", chat_id, exc)
            self._notifier.error(describe_error(exc, "Failed to mark messages as read"))
        finally:
            self._throttle.release(chat_id, success=success)
        return success

    def _stamp_read_locally(self, chat_id: str) -> None:
        for message in self._messages:
            if message.chat == chat_id and message.sender_id != self._user_id:
                message.mark_read_by(self._user_id)
        self._set_unread(chat_id, 0)
        self._changed()

    # --- Inbound events ---

    async def handle_event(self, event: SocketEvent) -> None:
        """Apply an inbound socket event to the store."""
        if isinstance(event, NewMessage):
            await self._on_new_message(event)
        elif isinstance(event, MessageEdited):
            await self._on_message_edited(event)
        elif isinstance(event, MessageDeleted):
            await self._on_message_deleted(event)
        elif isinstance(event, TypingStarted):
            self._on_typing_started(event)
        elif isinstance(event, TypingStopped):
            self._on_typing_stopped(event)
        elif isinstance(event, UserOnline):
            self._on_user_online(event)
        elif isinstance(event, UserOffline):
            self._on_user_offline(event)
        elif isinstance(event, OnlineUsers):
            self._online = {u.id: u for u in event.users}
            self._changed()
        elif isinstance(event, MessagesRead):
            self._on_messages_read(event)
        elif isinstance(event, ChatUpdated):
            await self.refresh_chats()

    def _is_active(self, chat_id: str | None) -> bool:
        return chat_id is not None and self._selected is not None and self._selected.id == chat_id

    async def _on_new_message(self, event: NewMessage) -> None:
        message = event.message
        chat_id = event.chat_id
        if message is None or not chat_id:
            log.debug("Dropping new_message without chat id")
            return

        active = self._is_active(chat_id)
        own = message.sender_id == self._user_id
        if active:
            if any(m.id == message.id for m in self._messages):
                log.debug("Duplicate message %s ignored", message.id)
                return
            self._messages.append(message)

        chat = self._find_chat(chat_id)
        if chat is None:
            self._changed()
            await self.refresh_chats()
        else:
            if active:
                unread = 0
            elif own:
                unread = chat.unread_count
            else:
                unread = chat.unread_count + 1
            self._replace_chat(
                chat.model_copy(update={"last_message": _preview(message), "unread_count": unread}),
                to_front=True,
            )
            self._changed()

        if active and not own:
            await self._request_mark_read(chat_id)

    async def _on_message_edited(self, event: MessageEdited) -> None:
        if not event.chat_id:
            log.debug("Dropping message_edited without chat id")
            return
        if self._is_active(event.chat_id) and event.message is not None:
            edited = event.message
            update = {name: getattr(edited, name) for name in edited.model_fields_set}
            update.pop("id", None)
            for i, message in enumerate(self._messages):
                if message.id == event.message_id:
                    self._messages[i] = message.model_copy(update=update)
                    self._changed()
                    break
        await self.refresh_chats()

    async def _on_message_deleted(self, event: MessageDeleted) -> None:
        if not event.chat_id:
            log.debug("Dropping message_deleted without chat id")
            return
        if self._is_active(event.chat_id) and event.message_id:
            kept = [m for m in self._messages if m.id != event.message_id]
            if len(kept) != len(self._messages):
                self._messages = kept
                self._changed()
        await self.refresh_chats()

    def _on_typing_started(self, event: TypingStarted) -> None:
        user, chat_id = event.user, event.chat_id
        if user is None or chat_id is None or user.id == self._user_id:
            return
        if not self._is_active(chat_id):
            return
        users = self._typing.setdefault(chat_id, {})
        if user.id not in users:
            users[user.id] = user
            self._changed()

    def _on_typing_stopped(self, event: TypingStopped) -> None:
        if not event.chat_id or not event.user_id:
            return
        users = self._typing.get(event.chat_id)
        if users and users.pop(event.user_id, None) is not None:
            if not users:
                del self._typing[event.chat_id]
            self._changed()

    def _on_user_online(self, event: UserOnline) -> None:
        user = event.user
        if user is None:
            return
        existing = self._online.get(user.id)
        if existing is not None:
            update = {name: getattr(user, name) for name in user.model_fields_set if name != "id"}
            user = existing.model_copy(update=update)
        self._online[user.id] = user
        self._changed()

    def _on_user_offline(self, event: UserOffline) -> None:
        if event.user_id and self._online.pop(event.user_id, None) is not None:
            self._changed()

    def _on_messages_read(self, event: MessagesRead) -> None:
        reader = event.user_id
        if not reader or reader == self._user_id:
            return
        changed = False
        if event.message_id:
            for message in self._messages:
                if message.id == event.message_id:
                    changed = message.mark_read_by(reader, event.read_at)
                    break
        elif self._is_active(event.chat_id):
            # Peer opened the chat: every message we sent there counts as read.
            for message in self._messages:
                if message.chat == event.chat_id and message.sender_id == self._user_id:
                    changed = message.mark_read_by(reader, event.read_at) or changed
        if changed:
            self._changed()

    # --- Connection state ---

    async def handle_connection_change(self, connected: bool) -> None:
        previous = self._last_connected
        self._last_connected = connected
        if previous is not None and previous == connected:
            return

        self._joined_rooms.clear()
        if connected:
            if previous is False and self._ever_connected:
                self._notifier.success(CONNECTION_RESTORED)
            self._ever_connected = True
            await self._sync_rooms()
        elif previous is True:
            self._notifier.warning(CONNECTION_LOST)
        self._changed()

    async def _sync_rooms(self) -> None:
        """Join every listed chat not yet joined on the current connection."""
        if not self._socket.connected:
            return
        for chat in list(self._chats):
            if chat.id in self._joined_rooms:
                continue
            self._joined_rooms.add(chat.id)
            try:
                await self._socket.join_chat(chat.id)
            except AskiSocketError:
                self._joined_rooms.discard(chat.id)
                log.debug("Could not join room %s, socket not connected", chat.id)
                return

    # --- Helpers ---

    def _find_chat(self, chat_id: str) -> Chat | None:
        return next((c for c in self._chats if c.id == chat_id), None)

    def _replace_chat(self, chat: Chat, *, to_front: bool = False) -> None:
        others = [c for c in self._chats if c.id != chat.id]
        if to_front:
            self._chats = [chat, *others]
        else:
            self._chats = [chat if c.id == chat.id else c for c in self._chats]
        if self._selected is not None and self._selected.id == chat.id:
            self._selected = chat

    def _set_unread(self, chat_id: str, count: int) -> None:
        chat = self._find_chat(chat_id)
        if chat is not None and chat.unread_count != count:
            self._replace_chat(chat.model_copy(update={"unread_count": count}))

    def _append_message(self, message: Message) -> None:
        if not any(m.id == message.id for m in self._messages):
            self._messages.append(message)


def _merge_page(page: list[Message], buffered: list[Message], chat_id: str) -> list[Message]:
    """Combine a fetched page (the latest messages, oldest first) with the buffer.

    Only buffered messages newer than everything on the page survive: those
    were pushed over the socket while the request was in flight.  Older
    ones either fell out of the page window or were deleted server-side.
    """
    fetched = {m.id for m in page}
    stamps = [m.created_at for m in page if m.created_at is not None]
    newest = max(stamps) if stamps else None
    pushed = [
        m for m in buffered
        if m.chat == chat_id
        and m.id not in fetched
        and (not page or (newest is not None and m.created_at is not None and m.created_at > newest))
    ]
    return [*page, *pushed]


def _preview(message: Message) -> LastMessage:
    content = message.content
    if not content and message.type != MessageType.text:
        content = "File"
    return LastMessage(
        content=content,
        sender=message.sender,
        created_at=message.created_at,
        type=message.type,
    )
