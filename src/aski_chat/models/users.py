from pydantic import Field

from aski_chat.models.base import AskiModel


class User(AskiModel):
    id: str = Field(alias="_id")
    name: str = ""
    email: str = ""
    avatar: str | None = None
    roles: list[str] = []
    is_active: bool | None = None
