"""SDK exception hierarchy."""

from __future__ import annotations

import httpx

from aski_chat.models.errors import ErrorResponse


class AskiHTTPError(Exception):
    """Raised when the Aski API returns a non-2xx response."""

    def __init__(
        self,
        status: int,
        error: ErrorResponse | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        self.status = status
        self.error = error
        self.response = response
        msg = error.message if error and error.message else f"HTTP {status}"
        super().__init__(f"[{status}] {msg}")

    @classmethod
    def from_response(cls, response: httpx.Response) -> AskiHTTPError:
        """Build from an httpx response, attempting to parse the error body."""
        error: ErrorResponse | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            # express-rate-limit puts the text under "error" instead of "message"
            if "message" not in body and isinstance(body.get("error"), str):
                body = {**body, "message": body["error"]}
            error = ErrorResponse.model_validate(body)
        return cls(status=response.status_code, error=error, response=response)

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


class AskiNetworkError(Exception):
    """Raised when a transport-level error occurs (connection refused, timeout, etc.)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AskiSocketError(Exception):
    """Raised when a socket emission is attempted without a live connection."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)


def describe_error(exc: BaseException, fallback: str) -> str:
    """Pick the most specific user-facing message for ``exc``."""
    if isinstance(exc, AskiHTTPError) and exc.message:
        return exc.message
    if isinstance(exc, (AskiNetworkError, AskiSocketError)) and str(exc):
        return str(exc)
    return fallback
