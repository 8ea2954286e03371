"""Shared test fixtures for SDK tests."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from aski_chat.api.chats import UploadFile
from aski_chat.errors import AskiHTTPError
from aski_chat.http import HTTPClient
from aski_chat.models.chats import Chat, ChatListResponse
from aski_chat.models.events import normalize_chat, normalize_message
from aski_chat.models.messages import MarkReadResponse, Message, MessageListResponse
from aski_chat.realtime import SocketClient
from aski_chat.store import ChatStore
from aski_chat.throttle import ReadThrottle

ME = "u-me"
PEER = "u-peer"


@pytest.fixture
def mock_transport():
    """Returns an httpx mock transport that records requests."""
    calls: list[dict[str, Any]] = []
    default_response = httpx.Response(200, json={})

    class RecordingTransport(httpx.AsyncBaseTransport):
        def __init__(self):
            self.response = default_response

        async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
            body = None
            content = await request.aread()
            if content:
                try:
                    body = json.loads(content)
                except ValueError:
                    body = content
            calls.append({
                "method": request.method,
                "url": str(request.url),
                "path": request.url.path,
                "headers": dict(request.headers),
                "body": body,
            })
            return self.response

    transport = RecordingTransport()
    return transport, calls


@pytest.fixture
def http_client(mock_transport):
    """HTTPClient with a mock transport."""
    transport, calls = mock_transport
    client = HTTPClient("https://aski.test", token="test-token")
    # Replace the inner httpx client with one using our mock transport
    client._client = httpx.AsyncClient(
        base_url="https://aski.test",
        transport=transport,
    )
    return client, transport, calls


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def user_payload(uid: str, name: str = "") -> dict[str, Any]:
    return {"_id": uid, "name": name or uid, "email": f"{uid}@aski.test"}


def chat_payload(cid: str, *, unread: int = 0, peer: str = PEER, type: str = "direct") -> dict[str, Any]:
    return {
        "_id": cid,
        "name": f"chat {cid}",
        "type": type,
        "participants": [
            {"user": user_payload(ME), "role": "admin"},
            {"user": user_payload(peer), "role": "member"},
        ],
        "unreadCount": unread,
        "isActive": True,
    }


def message_payload(
    mid: str, chat: str, sender: str = PEER, content: str = "hi", **extra: Any
) -> dict[str, Any]:
    return {
        "_id": mid,
        "chat": chat,
        "sender": user_payload(sender),
        "content": content,
        "type": "text",
        "readBy": [],
        "isDeleted": False,
        "createdAt": "2025-03-01T10:00:00.000Z",
        **extra,
    }


def make_chat(cid: str, **kwargs: Any) -> Chat:
    return normalize_chat(chat_payload(cid, **kwargs))


def make_message(mid: str, chat: str, sender: str = PEER, **kwargs: Any) -> Message:
    return normalize_message(message_payload(mid, chat, sender, **kwargs))


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

class FakeChatsAPI:
    """In-memory stand-in for ChatsAPI that records every call."""

    def __init__(self) -> None:
        self.chats: list[Chat] = []
        self.messages_by_chat: dict[str, list[Message]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail: dict[str, Exception] = {}
        self.sent_counter = 0

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if name in self.fail:
            raise self.fail[name]

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    async def list(self, *, page: int = 1, limit: int = 20) -> ChatListResponse:
        self._record("list")
        return ChatListResponse(chats=[c.model_copy() for c in self.chats])

    async def messages(self, chat_id: str, *, page: int = 1, limit: int = 50) -> MessageListResponse:
        self._record("messages", chat_id)
        msgs = [m.model_copy(deep=True) for m in self.messages_by_chat.get(chat_id, [])]
        return MessageListResponse(messages=msgs, total_messages=len(msgs))

    async def send_message(self, chat_id: str, content: str, *, reply_to: str | None = None) -> Message:
        self._record("send_message", (chat_id, content, reply_to))
        self.sent_counter += 1
        return make_message(f"sent-{self.sent_counter}", chat_id, ME, content=content)

    async def send_file(self, chat_id: str, file: Any, *, content: str | None = None,
                        reply_to: str | None = None) -> Message:
        self._record("send_file", (chat_id, file))
        return make_message("file-1", chat_id, ME, content="", type="file")

    async def mark_read(self, chat_id: str) -> MarkReadResponse:
        self._record("mark_read", chat_id)
        return MarkReadResponse(marked_count=1)

    async def create_direct(self, tutor_id: str) -> Chat:
        self._record("create_direct", tutor_id)
        chat = make_chat("c-new", peer=tutor_id)
        self.chats.insert(0, chat)
        return chat


class FakeSio:
    """Records emits in place of socketio.AsyncClient."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, dict[str, Any]]] = []
        self.connect_calls: list[tuple[str, dict[str, Any]]] = []
        self.disconnected = False

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append((url, kwargs))

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        self.emitted.append((event, data))

    async def disconnect(self) -> None:
        self.disconnected = True

    def events(self, name: str) -> list[dict[str, Any]]:
        return [d for e, d in self.emitted if e == name]


class RecordingNotifier:
    def __init__(self) -> None:
        self.toasts: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.toasts.append(("success", message))

    def info(self, message: str) -> None:
        self.toasts.append(("info", message))

    def warning(self, message: str) -> None:
        self.toasts.append(("warning", message))

    def error(self, message: str) -> None:
        self.toasts.append(("error", message))


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def http_error(status: int, message: str | None = None) -> AskiHTTPError:
    body = {"status": "failed", "message": message} if message else {}
    return AskiHTTPError.from_response(httpx.Response(status, json=body))


@pytest.fixture
def api() -> FakeChatsAPI:
    return FakeChatsAPI()


@pytest.fixture
def socket_client() -> SocketClient:
    sock = SocketClient("http://aski.test", "tok")
    sock._sio = FakeSio()
    return sock


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(api, socket_client, notifier, clock) -> ChatStore:
    return ChatStore(
        api, socket_client, ME, notifier=notifier, throttle=ReadThrottle(1.5, clock=clock)
    )


@pytest.fixture
def upload() -> UploadFile:
    return UploadFile(filename="notes.pdf", data=b"%PDF-1.4", mimetype="application/pdf")
