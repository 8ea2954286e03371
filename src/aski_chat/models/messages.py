from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from aski_chat.models.base import AskiModel
from aski_chat.models.enums import MessageType
from aski_chat.models.users import User


class Attachment(AskiModel):
    filename: str
    original_name: str = ""
    mimetype: str = ""
    size: int = 0
    url: str = ""


class ReadReceipt(AskiModel):
    user: str
    read_at: datetime | None = None


class Message(AskiModel):
    id: str = Field(alias="_id")
    chat: str
    sender: User
    content: str = ""
    type: MessageType = MessageType.text
    attachments: list[Attachment] = []
    read_by: list[ReadReceipt] = []
    reply_to: str | None = None
    meta: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    edited_at: datetime | None = None
    is_deleted: bool = False

    @property
    def sender_id(self) -> str:
        return self.sender.id

    def is_read_by(self, user_id: str) -> bool:
        return any(r.user == user_id for r in self.read_by)

    def mark_read_by(self, user_id: str, read_at: datetime | None = None) -> bool:
        """Append a receipt for ``user_id`` unless one exists. Returns True if added.

        The sender never gets a receipt on their own message.
        """
        if user_id == self.sender_id or self.is_read_by(user_id):
            return False
        self.read_by.append(
            ReadReceipt(user=user_id, read_at=read_at or datetime.now(timezone.utc))
        )
        return True


class MessageListResponse(AskiModel):
    messages: list[Message] = []
    current_page: int = 1
    total_pages: int = 1
    total_messages: int = 0


class MarkReadResponse(AskiModel):
    message: str | None = None
    marked_count: int = 0
    throttled: bool = False
