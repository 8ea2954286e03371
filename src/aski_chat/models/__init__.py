"""Client-side models for the Aski chat API."""

from aski_chat.models.base import AskiModel
from aski_chat.models.errors import ErrorResponse
from aski_chat.models.enums import ChatType, MessageType
from aski_chat.models.users import User
from aski_chat.models.chats import Chat, ChatListResponse, LastMessage
from aski_chat.models.messages import (
    Attachment,
    MarkReadResponse,
    Message,
    MessageListResponse,
    ReadReceipt,
)
from aski_chat.models.events import (
    ChatUpdated,
    MessageDeleted,
    MessageEdited,
    MessagesRead,
    NewMessage,
    OnlineUsers,
    ServerError,
    SocketEvent,
    TypingStarted,
    TypingStopped,
    UserOffline,
    UserOnline,
    normalize_chat,
    normalize_message,
    normalize_user,
    parse_event,
)

__all__ = [
    "AskiModel",
    "Attachment",
    "Chat",
    "ChatListResponse",
    "ChatType",
    "ChatUpdated",
    "ErrorResponse",
    "LastMessage",
    "MarkReadResponse",
    "Message",
    "MessageDeleted",
    "MessageEdited",
    "MessageListResponse",
    "MessageType",
    "MessagesRead",
    "NewMessage",
    "OnlineUsers",
    "ReadReceipt",
    "ServerError",
    "SocketEvent",
    "TypingStarted",
    "TypingStopped",
    "User",
    "UserOffline",
    "UserOnline",
    "normalize_chat",
    "normalize_message",
    "normalize_user",
    "parse_event",
]
