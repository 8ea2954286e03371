"""Chat and message REST methods."""

from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from aski_chat.models.chats import Chat, ChatListResponse
from aski_chat.models.events import normalize_chat, normalize_message
from aski_chat.models.messages import MarkReadResponse, Message, MessageListResponse
from aski_chat.pagination import PageIterator, unwrap

if TYPE_CHECKING:
    from aski_chat.http import HTTPClient


@dataclass
class UploadFile:
    """In-memory file for ``send_file``."""
    filename: str
    data: bytes
    mimetype: str = "application/octet-stream"


async def _load_upload(file: UploadFile | str | Path) -> UploadFile:
    if isinstance(file, UploadFile):
        return file
    path = Path(file)
    data = await asyncio.to_thread(path.read_bytes)
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return UploadFile(filename=path.name, data=data, mimetype=mime)


class ChatsAPI:
    def __init__(self, http: HTTPClient, prefix: str = "/api/chat") -> None:
        self._http = http
        self._prefix = prefix.rstrip("/")

    def _path(self, suffix: str) -> str:
        return f"{self._prefix}/{suffix}"

    # --- Chats ---

    async def list(self, *, page: int = 1, limit: int = 20) -> ChatListResponse:
        r = await self._http.get(self._path("list"), params={"page": page, "limit": limit})
        data = unwrap(r.json())
        return ChatListResponse(chats=[normalize_chat(c) for c in data.get("chats", [])])

    def iter_chats(self, *, limit: int = 20) -> PageIterator[Chat]:
        return PageIterator(self._http, self._path("list"), "chats", normalize_chat, limit=limit)

    async def get(self, chat_id: str) -> Chat:
        r = await self._http.get(self._path(chat_id))
        return normalize_chat(unwrap(r.json()))

    async def create_direct(self, tutor_id: str) -> Chat:
        r = await self._http.post(
            self._path("create"),
            json={"type": "direct", "tutorId": tutor_id, "participants": [tutor_id]},
        )
        return normalize_chat(unwrap(r.json()))

    # --- Messages ---

    async def messages(
        self, chat_id: str, *, page: int = 1, limit: int = 50
    ) -> MessageListResponse:
        r = await self._http.get(
            self._path(f"{chat_id}/messages"), params={"page": page, "limit": limit}
        )
        data = unwrap(r.json())
        return MessageListResponse(
            messages=[normalize_message(m, chat_id) for m in data.get("messages", [])],
            current_page=data.get("currentPage", page),
            total_pages=data.get("totalPages", 1),
            total_messages=data.get("totalMessages", 0),
        )

    def iter_messages(self, chat_id: str, *, limit: int = 50) -> PageIterator[Message]:
        """Iterate pages newest-first; each page is in chronological order."""
        return PageIterator(
            self._http,
            self._path(f"{chat_id}/messages"),
            "messages",
            lambda raw: normalize_message(raw, chat_id),
            limit=limit,
        )

    async def send_message(
        self, chat_id: str, content: str, *, reply_to: str | None = None
    ) -> Message:
        payload: dict[str, Any] = {"content": content, "type": "text"}
        if reply_to is not None:
            payload["replyTo"] = reply_to
        r = await self._http.post(self._path(f"{chat_id}/messages"), json=payload)
        return normalize_message(unwrap(r.json()), chat_id)

    async def send_file(
        self,
        chat_id: str,
        file: UploadFile | str | Path,
        *,
        content: str | None = None,
        reply_to: str | None = None,
    ) -> Message:
        upload = await _load_upload(file)
        form: dict[str, str] = {}
        if content:
            form["content"] = content
        if reply_to:
            form["replyTo"] = reply_to
        r = await self._http.post(
            self._path(f"{chat_id}/messages/file"),
            data=form,
            files=[("files", (upload.filename, upload.data, upload.mimetype))],
        )
        return normalize_message(unwrap(r.json()), chat_id)

    async def mark_read(self, chat_id: str) -> MarkReadResponse:
        r = await self._http.post(self._path(f"{chat_id}/messages/read"))
        return MarkReadResponse.model_validate(r.json())

    async def edit_message(self, message_id: str, content: str) -> Message:
        r = await self._http.put(self._path(f"messages/{message_id}"), json={"content": content})
        return normalize_message(unwrap(r.json()))

    async def delete_message(self, message_id: str) -> None:
        await self._http.delete(self._path(f"messages/{message_id}"))
