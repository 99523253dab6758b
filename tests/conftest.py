"""
Pytest configuration and shared fixtures.

This configuration sets up:
- Test markers for categorization
- Event-stream body builders (`sse_body`, `stream_response`)
- Fakes for the token layer and the proxy (httpx.MockTransport)
- Captured structlog output (`captured_log`)
"""

import io
import json
from typing import Any, AsyncIterator, Callable, Iterator, Optional, Sequence, Union

import httpx
import pytest

from completions_fetch.auth.tokens import CopilotToken, StaticTokenManager, TokenNotifier
from completions_fetch.clients.http import create_http_client
from completions_fetch.clients.transport import TransportClient, TransportResponse
from completions_fetch.core.config import Settings
from completions_fetch.models.requests import CompletionRequest, Prompt
from completions_fetch.observability.logging import configure_logging
from completions_fetch.services.fetcher import LiveCompletionFetcher


TEST_PROXY_URL = "https://proxy.test"
TEST_MODEL = "copilot-codex"


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    - unit: tests for individual components
    - integration: tests across fetcher, transport and decoder
    """
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across components")


# =============================================================================
# Event-stream builders
# =============================================================================


Payload = Union[str, dict[str, Any]]


def build_sse_body(*payloads: Payload, done: bool = True) -> str:
    """`data:` lines for each payload (dicts are JSON-encoded), then `data: [DONE]`."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n")
    if done:
        lines.append("data: [DONE]\n")
    return "".join(lines)


def choice_payload(index: int = 0, text: Optional[str] = None, **fields: Any) -> dict[str, Any]:
    """A stream payload with a single choice."""
    choice: dict[str, Any] = {"index": index}
    if text is not None:
        choice["text"] = text
    model = fields.pop("model", None)
    usage = fields.pop("usage", None)
    choice.update(fields)
    payload: dict[str, Any] = {"choices": [choice]}
    if model is not None:
        payload["model"] = model
    if usage is not None:
        payload["usage"] = usage
    return payload


async def _byte_chunks(chunks: Sequence[str]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk.encode("utf-8")


def make_stream_response(
    chunks: Union[str, Sequence[str]],
    status: int = 200,
    headers: Optional[dict[str, str]] = None,
) -> TransportResponse:
    """A TransportResponse whose body streams `chunks` in order."""
    if isinstance(chunks, str):
        chunks = [chunks]
    response = httpx.Response(status, headers=headers or {}, content=_byte_chunks(list(chunks)))
    return TransportResponse(response)


@pytest.fixture
def sse_body() -> Callable[..., str]:
    """Fixture form of build_sse_body."""
    return build_sse_body


@pytest.fixture
def choice() -> Callable[..., dict[str, Any]]:
    """Fixture form of choice_payload."""
    return choice_payload


@pytest.fixture
def stream_response() -> Callable[..., TransportResponse]:
    """Fixture form of make_stream_response."""
    return make_stream_response


# =============================================================================
# Settings / tokens
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at the test proxy with a short rate-limit cooldown."""
    return Settings(
        proxy_url=TEST_PROXY_URL,
        rate_limit_cooldown_seconds=0.05,
    )


@pytest.fixture
def token_notifier() -> TokenNotifier:
    return TokenNotifier()


@pytest.fixture
def token_manager(token_notifier: TokenNotifier) -> StaticTokenManager:
    """Token manager handing out a fixed token."""
    return StaticTokenManager(lambda: CopilotToken(token="test-token"), token_notifier)


@pytest.fixture
def completion_request() -> CompletionRequest:
    """A single-candidate ghost-text request."""
    return CompletionRequest(
        prompt=Prompt(prefix="def add(a, b):\n", suffix=""),
        engine_model_id=TEST_MODEL,
        language_id="python",
        count=1,
        our_request_id="our-request-id",
    )


# =============================================================================
# Fake proxy
# =============================================================================


class FakeProxy:
    """
    Handler for httpx.MockTransport that records requests.

    Each call pops the next queued (status, body, headers) reply; the last
    reply is repeated once the queue is down to one entry.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._replies: list[tuple[int, Union[str, Sequence[str]], dict[str, str]]] = []

    def reply(
        self,
        status: int = 200,
        body: Union[str, Sequence[str]] = "",
        headers: Optional[dict[str, str]] = None,
    ) -> "FakeProxy":
        self._replies.append((status, body, headers or {}))
        return self

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def json_body(self, position: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[position].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._replies:
            return httpx.Response(500, text="no reply queued")
        status, body, headers = self._replies[0] if len(self._replies) == 1 else self._replies.pop(0)
        chunks = [body] if isinstance(body, str) else list(body)
        return httpx.Response(status, headers=headers, content=_byte_chunks(chunks))


@pytest.fixture
def fake_proxy() -> FakeProxy:
    return FakeProxy()


@pytest.fixture
def transport(fake_proxy: FakeProxy) -> TransportClient:
    """TransportClient over an httpx.MockTransport serving `fake_proxy`."""
    http_client = create_http_client(transport=httpx.MockTransport(fake_proxy))
    return TransportClient(http_client=http_client)


@pytest.fixture
def fetcher(
    transport: TransportClient,
    token_manager: StaticTokenManager,
    token_notifier: TokenNotifier,
    settings: Settings,
) -> LiveCompletionFetcher:
    return LiveCompletionFetcher(transport, token_manager, token_notifier, settings)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture
def captured_log() -> Iterator[Callable[[], list[dict[str, Any]]]]:
    """Route structlog JSON output to a buffer; returns a reader of parsed events."""
    buffer = io.StringIO()
    configure_logging(level="DEBUG", stream=buffer, force=True)

    def events() -> list[dict[str, Any]]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]

    yield events
    configure_logging(force=True)
