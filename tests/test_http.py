"""Tests for the HTTP client."""

import asyncio

import httpx
import pytest

from aski_chat.errors import AskiHTTPError, AskiNetworkError
from aski_chat.http import HTTPClient


def _rate_limited(message: str = "Too many requests", **headers: str) -> httpx.Response:
    return httpx.Response(
        429,
        json={"error": message, "retryAfter": "15 minutes"},
        headers={"ratelimit-limit": "100", "ratelimit-remaining": "0", "ratelimit-reset": "0", **headers},
    )


class SequenceTransport(httpx.AsyncBaseTransport):
    """Returns the given responses in order, repeating the last one."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.count = 0
        self.methods: list[str] = []

    async def handle_async_request(self, request):
        self.methods.append(request.method)
        response = self.responses[min(self.count, len(self.responses) - 1)]
        self.count += 1
        return response


def _use(client: HTTPClient, transport: httpx.AsyncBaseTransport) -> None:
    client._client = httpx.AsyncClient(base_url="https://aski.test", transport=transport)


@pytest.fixture
def sleeps(monkeypatch):
    delays: list[float] = []

    async def recording_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", recording_sleep)
    return delays


@pytest.mark.asyncio
async def test_get_adds_auth_header(http_client):
    client, transport, calls = http_client
    transport.response = httpx.Response(200, json={"status": "success", "chats": []})

    response = await client.get("/api/chat/list")
    assert response.status_code == 200
    assert len(calls) == 1
    assert calls[0]["headers"]["authorization"] == "Bearer test-token"


@pytest.mark.asyncio
async def test_post_sends_json(http_client):
    client, transport, calls = http_client
    transport.response = httpx.Response(201, json={"status": "success"})

    response = await client.post("/api/chat/c1/messages", json={"content": "hi", "type": "text"})
    assert response.status_code == 201
    assert calls[0]["body"] == {"content": "hi", "type": "text"}


@pytest.mark.asyncio
async def test_raises_on_4xx_with_server_message(http_client):
    client, transport, calls = http_client
    transport.response = httpx.Response(
        404, json={"status": "failed", "message": "Chat not found"}
    )

    with pytest.raises(AskiHTTPError) as exc_info:
        await client.get("/api/chat/missing")

    assert exc_info.value.status == 404
    assert exc_info.value.message == "Chat not found"


@pytest.mark.asyncio
async def test_retry_on_429_uses_retry_after(http_client, sleeps):
    client, _, _ = http_client
    transport = SequenceTransport(
        _rate_limited(**{"retry-after": "2"}),
        _rate_limited(**{"retry-after": "2"}),
        httpx.Response(200, json={"ok": True}),
    )
    _use(client, transport)

    response = await client.get("/api/chat/list")
    assert response.status_code == 200
    assert transport.count == 3
    assert sleeps == [2.0, 2.0]


@pytest.mark.asyncio
async def test_retry_429_without_header_uses_default(http_client, sleeps):
    client, _, _ = http_client
    _use(client, SequenceTransport(_rate_limited(), httpx.Response(200, json={})))

    await client.get("/api/chat/list")
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_retry_429_applies_to_post(http_client, sleeps):
    client, _, _ = http_client
    transport = SequenceTransport(_rate_limited(), httpx.Response(201, json={}))
    _use(client, transport)

    await client.post("/api/chat/c1/messages", json={"content": "hi"})
    assert transport.methods == ["POST", "POST"]


@pytest.mark.asyncio
async def test_retry_exhaustion_raises(http_client, sleeps):
    client, _, _ = http_client
    _use(client, SequenceTransport(_rate_limited("Too many requests from this IP")))

    with pytest.raises(AskiHTTPError) as exc_info:
        await client.get("/api/chat/list")
    assert exc_info.value.status == 429
    assert exc_info.value.message == "Too many requests from this IP"


@pytest.mark.asyncio
async def test_no_auth_header_when_no_token():
    client = HTTPClient("https://aski.test", token=None)
    headers = client._headers()
    assert "Authorization" not in headers
    await client.close()


@pytest.mark.asyncio
async def test_token_setter():
    client = HTTPClient("https://aski.test")
    assert client.token is None
    client.token = "new-token"
    assert client.token == "new-token"
    assert client._headers()["Authorization"] == "Bearer new-token"
    await client.close()


@pytest.mark.asyncio
async def test_put_sends_request(http_client):
    client, transport, calls = http_client
    await client.put("/api/chat/messages/m1", json={"content": "edited"})
    assert calls[0]["method"] == "PUT"
    assert calls[0]["path"] == "/api/chat/messages/m1"


@pytest.mark.asyncio
async def test_delete_sends_request(http_client):
    client, transport, calls = http_client
    await client.delete("/api/chat/messages/m1")
    assert calls[0]["method"] == "DELETE"
    assert calls[0]["path"] == "/api/chat/messages/m1"


@pytest.mark.asyncio
async def test_custom_headers_merged(http_client):
    client, transport, calls = http_client
    await client.request("GET", "/api/chat/list", headers={"x-custom": "val"})
    assert calls[0]["headers"]["x-custom"] == "val"
    assert calls[0]["headers"]["authorization"] == "Bearer test-token"


@pytest.mark.asyncio
async def test_params_forwarded(http_client):
    client, transport, calls = http_client
    await client.get("/api/chat/list", params={"page": 2, "limit": 20})
    url = calls[0]["url"]
    assert "page=2" in url
    assert "limit=20" in url


@pytest.mark.asyncio
async def test_close_closes_inner_client(http_client):
    client, transport, calls = http_client
    assert not client._client.is_closed
    await client.close()
    assert client._client.is_closed


# --- 5xx retry tests ---


@pytest.mark.asyncio
async def test_get_retried_on_500_with_backoff(http_client, sleeps):
    client, _, _ = http_client
    transport = SequenceTransport(
        httpx.Response(500, text="Internal Server Error"),
        httpx.Response(502, text="Bad Gateway"),
        httpx.Response(200, json={"ok": True}),
    )
    _use(client, transport)

    response = await client.get("/api/chat/list")
    assert response.status_code == 200
    assert transport.count == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_get_503_exhaustion_raises(http_client, sleeps):
    client, _, _ = http_client
    _use(client, SequenceTransport(httpx.Response(503, text="Service Unavailable")))

    with pytest.raises(AskiHTTPError) as exc_info:
        await client.get("/api/chat/list")
    assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_post_not_retried_on_500(http_client, sleeps):
    client, _, _ = http_client
    transport = SequenceTransport(
        httpx.Response(500, json={"status": "failed", "message": "Internal server error"}),
        httpx.Response(201, json={}),
    )
    _use(client, transport)

    with pytest.raises(AskiHTTPError) as exc_info:
        await client.post("/api/chat/c1/messages", json={"content": "hi"})
    assert exc_info.value.status == 500
    assert transport.count == 1
    assert sleeps == []


# --- Transport error wrapping ---


@pytest.mark.asyncio
async def test_transport_error_wrapped():
    """Transport errors (connect timeout, etc.) are wrapped in AskiNetworkError."""

    class FailingTransport(httpx.AsyncBaseTransport):
        async def handle_async_request(self, request):
            raise httpx.ConnectTimeout("Connection timed out")

    client = HTTPClient("https://aski.test", token="test-token")
    _use(client, FailingTransport())

    with pytest.raises(AskiNetworkError) as exc_info:
        await client.get("/api/chat/list")
    assert "Connection timed out" in str(exc_info.value)
    assert exc_info.value.__cause__ is not None
    await client.close()


@pytest.mark.asyncio
async def test_connect_error_wrapped():
    class RefusingTransport(httpx.AsyncBaseTransport):
        async def handle_async_request(self, request):
            raise httpx.ConnectError("Connection refused")

    client = HTTPClient("https://aski.test", token="test-token")
    _use(client, RefusingTransport())

    with pytest.raises(AskiNetworkError):
        await client.get("/api/chat/list")
    await client.close()
