from aski_chat.models.base import AskiModel


class ErrorResponse(AskiModel):
    status: str = "failed"
    message: str | None = None
    status_code: int | None = None
