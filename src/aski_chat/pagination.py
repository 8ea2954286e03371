"""Async iterator for page-number pagination."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, AsyncIterator, TypeVar

from aski_chat.http import HTTPClient

T = TypeVar("T")


def unwrap(body: Any) -> Any:
    """Return the payload of a ``{status, data}`` envelope, or the body itself."""
    if isinstance(body, dict) and isinstance(body.get("data"), (dict, list)):
        return body["data"]
    return body


class PageIterator(AsyncIterator[T]):
    """Yields items across ``page``/``limit`` paginated API responses.

    Expects bodies with a list under ``key`` (optionally inside a ``data``
    envelope) and, when the server knows it, a ``totalPages`` count.
    Iteration stops at the last page or at the first short page.
    """

    def __init__(
        self,
        http: HTTPClient,
        path: str,
        key: str,
        parse: Callable[[Any], T],
        *,
        params: dict[str, Any] | None = None,
        limit: int = 50,
    ) -> None:
        self._http = http
        self._path = path
        self._key = key
        self._parse = parse
        self._params = dict(params) if params else {}
        self._limit = limit
        self._buffer: list[T] = []
        self._page = 0
        self._exhausted = False

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        if self._buffer:
            return self._buffer.pop(0)
        if self._exhausted:
            raise StopAsyncIteration
        await self._fetch_page()
        if not self._buffer:
            raise StopAsyncIteration
        return self._buffer.pop(0)

    async def _fetch_page(self) -> None:
        self._page += 1
        params = {**self._params, "page": self._page, "limit": self._limit}
        r = await self._http.get(self._path, params=params)
        data = unwrap(r.json())
        items = data.get(self._key, []) if isinstance(data, dict) else []
        self._buffer = [self._parse(item) for item in items]
        total_pages = data.get("totalPages") if isinstance(data, dict) else None
        if len(items) < self._limit or (total_pages is not None and self._page >= total_pages):
            self._exhausted = True

    async def flatten(self) -> list[T]:
        """Consume the full iterator into a list."""
        result: list[T] = []
        async for item in self:
            result.append(item)
        return result
