from datetime import datetime

from pydantic import Field

from aski_chat.models.base import AskiModel
from aski_chat.models.enums import ChatType, MessageType
from aski_chat.models.users import User


class LastMessage(AskiModel):
    content: str = ""
    sender: User | None = None
    created_at: datetime | None = None
    type: MessageType = MessageType.text


class Chat(AskiModel):
    id: str = Field(alias="_id")
    name: str | None = None
    description: str | None = None
    type: ChatType = ChatType.group
    participants: list[User] = []
    last_message: LastMessage | None = None
    unread_count: int = 0
    avatar: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def has_participant(self, user_id: str) -> bool:
        return any(p.id == user_id for p in self.participants)


class ChatListResponse(AskiModel):
    chats: list[Chat] = []
