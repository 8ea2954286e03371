"""Socket event dataclasses and payload normalization.

The Socket.IO server emits the same logical payload in several shapes
(a message bare or wrapped in ``{"message": ..., "chatId": ...}``, the
``chat`` field as an id or a populated object, ``sender`` as an id or a
user).  The ``normalize_*`` functions below are the only code that
accepts those variants; everything past them sees canonical models.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from aski_chat.models.chats import Chat
from aski_chat.models.messages import Message
from aski_chat.models.users import User


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def ref_id(value: Any) -> str | None:
    """Return the id of a reference given as a bare id or a populated object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        inner = value.get("_id", value.get("id"))
        return str(inner) if inner else None
    return None


def normalize_user(raw: Any) -> User:
    """Build a ``User`` from an id string or a (possibly nested) user dict."""
    if isinstance(raw, str):
        return User(id=raw)
    if not isinstance(raw, dict):
        raise ValueError(f"cannot build user from {type(raw).__name__}")
    if isinstance(raw.get("user"), dict):
        raw = raw["user"]
    data = dict(raw)
    uid = ref_id(data) or ref_id(data.get("userId"))
    if uid is None:
        raise ValueError("user payload has no id")
    data.pop("id", None)
    data["_id"] = uid
    if "userName" in data and "name" not in data:
        data["name"] = data["userName"]
    return User.model_validate(data)


def _receipts(raw: Any) -> list[dict[str, Any]]:
    receipts = []
    for r in raw or []:
        if isinstance(r, str):
            receipts.append({"user": r})
            continue
        uid = ref_id(r.get("user")) if isinstance(r, dict) else None
        if uid is not None:
            receipts.append({"user": uid, "readAt": r.get("readAt")})
    return receipts


def normalize_message(raw: Any, chat_id: str | None = None) -> Message:
    """Build a canonical ``Message`` from any message payload shape.

    ``chat_id`` is used when the message itself carries no chat reference.
    Raises ``ValueError`` when no chat id can be resolved.
    """
    if isinstance(raw, dict) and isinstance(raw.get("message"), dict):
        chat_id = chat_id or ref_id(raw.get("chatId"))
        raw = raw["message"]
    if not isinstance(raw, dict):
        raise ValueError("message payload must be an object")

    data = dict(raw)
    chat = ref_id(data.get("chat")) or chat_id
    if chat is None:
        raise ValueError("message payload has no chat id")
    if "_id" not in data and "id" in data:
        data["_id"] = data.pop("id")
    data["chat"] = chat
    data["sender"] = normalize_user(data.get("sender"))
    data["replyTo"] = ref_id(data.get("replyTo"))
    data["readBy"] = _receipts(data.get("readBy"))
    if data.get("content") is None:
        data["content"] = ""
    return Message.model_validate(data)


def normalize_chat(raw: Any) -> Chat:
    """Build a canonical ``Chat`` from a list/detail payload."""
    if isinstance(raw, dict) and isinstance(raw.get("chat"), dict):
        raw = raw["chat"]
    if not isinstance(raw, dict):
        raise ValueError("chat payload must be an object")

    data = dict(raw)
    if "_id" not in data and "id" in data:
        data["_id"] = data.pop("id")
    participants = []
    for p in data.get("participants") or []:
        try:
            participants.append(normalize_user(p))
        except ValueError:
            continue
    data["participants"] = participants

    last = data.get("lastMessage")
    if isinstance(last, dict):
        last = dict(last)
        sender = last.get("sender")
        last["sender"] = normalize_user(sender) if sender else None
        if last.get("content") is None:
            last["content"] = ""
        data["lastMessage"] = last
    else:
        data["lastMessage"] = None
    return Chat.model_validate(data)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class SocketEvent:
    """Base for all inbound socket events."""
    type: str
    raw: Any = field(default=None, repr=False)


@dataclass
class NewMessage(SocketEvent):
    chat_id: str = ""
    message: Message | None = None

@dataclass
class MessageEdited(SocketEvent):
    chat_id: str | None = None
    message_id: str | None = None
    message: Message | None = None

@dataclass
class MessageDeleted(SocketEvent):
    chat_id: str | None = None
    message_id: str | None = None


@dataclass
class TypingStarted(SocketEvent):
    chat_id: str | None = None
    user: User | None = None

@dataclass
class TypingStopped(SocketEvent):
    chat_id: str | None = None
    user_id: str | None = None


@dataclass
class UserOnline(SocketEvent):
    user: User | None = None
    status: str = "online"

@dataclass
class UserOffline(SocketEvent):
    user_id: str | None = None

@dataclass
class OnlineUsers(SocketEvent):
    users: list[User] = field(default_factory=list)


@dataclass
class MessagesRead(SocketEvent):
    chat_id: str | None = None
    user_id: str | None = None
    message_id: str | None = None
    read_at: datetime | None = None


@dataclass
class ChatUpdated(SocketEvent):
    chat_id: str | None = None


@dataclass
class ServerError(SocketEvent):
    message: str = ""


def _as_dict(data: Any) -> dict[str, Any]:
    return data if isinstance(data, dict) else {}


def _parse_new_message(name: str, data: Any) -> SocketEvent:
    message = normalize_message(data, ref_id(_as_dict(data).get("chatId")))
    return NewMessage(type=name, raw=data, chat_id=message.chat, message=message)


def _parse_message_edited(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    chat_id = ref_id(d.get("chatId"))
    message: Message | None = None
    if isinstance(d.get("message"), dict) or "sender" in d:
        message = normalize_message(data, chat_id)
        chat_id = message.chat
    message_id = message.id if message else ref_id(d.get("messageId"))
    return MessageEdited(
        type=name, raw=data, chat_id=chat_id, message_id=message_id, message=message
    )


def _parse_message_deleted(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    return MessageDeleted(
        type=name,
        raw=data,
        chat_id=ref_id(d.get("chatId")),
        message_id=ref_id(d.get("messageId")) or ref_id(d.get("message")),
    )


def _parse_typing_start(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    user = normalize_user(d) if d.get("userId") or d.get("user") else None
    return TypingStarted(type=name, raw=data, chat_id=ref_id(d.get("chatId")), user=user)


def _parse_typing_stop(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    return TypingStopped(
        type=name, raw=data, chat_id=ref_id(d.get("chatId")), user_id=ref_id(d.get("userId"))
    )


def _parse_user_online(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    return UserOnline(
        type=name, raw=data, user=normalize_user(data), status=d.get("status") or "online"
    )


def _parse_user_offline(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    return UserOffline(type=name, raw=data, user_id=ref_id(d.get("userId")) or ref_id(data))


def _parse_presence(name: str, data: Any) -> SocketEvent:
    if _as_dict(data).get("status") == "offline":
        return _parse_user_offline(name, data)
    return _parse_user_online(name, data)


def _parse_online_users(name: str, data: Any) -> SocketEvent:
    items = data
    if isinstance(data, dict):
        items = data.get("users", data.get("userIds", []))
    return OnlineUsers(type=name, raw=data, users=[normalize_user(u) for u in items or []])


def _parse_messages_read(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    read_at = d.get("readAt")
    if isinstance(read_at, str):
        read_at = datetime.fromisoformat(read_at.replace("Z", "+00:00"))
    return MessagesRead(
        type=name,
        raw=data,
        chat_id=ref_id(d.get("chatId")),
        user_id=ref_id(d.get("userId")),
        message_id=ref_id(d.get("messageId")),
        read_at=read_at if isinstance(read_at, datetime) else None,
    )


def _parse_chat_updated(name: str, data: Any) -> SocketEvent:
    d = _as_dict(data)
    return ChatUpdated(type=name, raw=data, chat_id=ref_id(d.get("chatId")) or ref_id(d.get("chat")))


def _parse_error(name: str, data: Any) -> SocketEvent:
    message = _as_dict(data).get("message") if isinstance(data, dict) else str(data)
    return ServerError(type=name, raw=data, message=message or "")


_EVENT_MAP: dict[str, Callable[[str, Any], SocketEvent]] = {
    "new_message": _parse_new_message,
    "message_edited": _parse_message_edited,
    "message_deleted": _parse_message_deleted,
    "user_typing": _parse_typing_start,
    "user_stopped_typing": _parse_typing_stop,
    "user_online": _parse_user_online,
    "user_offline": _parse_user_offline,
    "user_presence_updated": _parse_presence,
    "online_users": _parse_online_users,
    "messages_read": _parse_messages_read,
    "chat_updated": _parse_chat_updated,
    "error": _parse_error,
}

INBOUND_EVENTS: tuple[str, ...] = tuple(_EVENT_MAP)


def parse_event(name: str, data: Any) -> SocketEvent:
    """Parse a raw socket payload into a typed event dataclass.

    Unknown event names yield a bare ``SocketEvent``.  Malformed payloads
    raise ``ValueError``.
    """
    parser = _EVENT_MAP.get(name)
    if parser is None:
        return SocketEvent(type=name, raw=data)
    return parser(name, data)
