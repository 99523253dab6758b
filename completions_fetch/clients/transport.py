"""
Transport Client - streaming POST to the completions proxy

Pure I/O: posts the request body, hands back the response with its body
still unread, and knows nothing about the event-stream protocol.

Outcomes of send():
    - TransportResponse: headers received, body streamable
    - NOT_SENT: the cancellation handle was set before the request hit the wire
    - RequestAbortedError: cancelled while waiting for response headers
    - TransportError: genuine network failure (connect, TLS, timeout, ...)
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Literal, Optional, Union

import httpx

from completions_fetch.clients.http import create_http_client
from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.core.config import Settings, get_settings
from completions_fetch.core.exceptions import RequestAbortedError, TransportError
from completions_fetch.models.responses import RequestId

logger = logging.getLogger(__name__)


NOT_SENT: Literal["not-sent"] = "not-sent"
"""Returned by send() when the request was cancelled before being sent."""

NotSent = Literal["not-sent"]


# =============================================================================
# Response wrapper
# =============================================================================


class TransportResponse:
    """
    Response whose body has not been read yet.

    The body must be consumed with iter_text() or text(), or released with
    destroy(). destroy() is idempotent and closes the underlying stream so
    the server sees the client is no longer interested.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._destroyed = False

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def request_id(self) -> RequestId:
        """Server identifiers taken from the response headers."""
        headers = self._response.headers
        return RequestId(
            header_request_id=headers.get("x-request-id", ""),
            server_experiments=headers.get("X-Copilot-Experiment", ""),
            deployment_id=headers.get("azureml-model-deployment", ""),
        )

    @property
    def processing_time_ms(self) -> int:
        """Server-side processing time from `openai-processing-ms`, 0 when absent."""
        value = self._response.headers.get("openai-processing-ms")
        if not value:
            return 0
        try:
            return int(value)
        except ValueError:
            return 0

    async def iter_text(self) -> AsyncIterator[str]:
        """Yield decoded body chunks of arbitrary size as they arrive."""
        try:
            async for chunk in self._response.aiter_text():
                yield chunk
        except httpx.StreamClosed:
            # destroy() was called while the body was being read
            return
        except httpx.TransportError as e:
            raise TransportError(f"Error reading response body: {e}", url=self._url()) from e

    async def text(self) -> str:
        """Read the whole body, for diagnostics on non-200 responses."""
        try:
            await self._response.aread()
            return self._response.text
        except httpx.TransportError as e:
            raise TransportError(f"Error reading response body: {e}", url=self._url()) from e
        finally:
            await self.destroy()

    async def destroy(self) -> None:
        """Close the body stream (no-op after the first call)."""
        if self._destroyed:
            return
        self._destroyed = True
        await self._response.aclose()

    def _url(self) -> Optional[str]:
        try:
            return str(self._response.request.url)
        except RuntimeError:
            return None


# =============================================================================
# Transport client
# =============================================================================


class TransportClient:
    """
    Issues completion requests in streaming mode.

    Example:
        >>> transport = TransportClient()
        >>> response = await transport.send(url, token, body, intent="copilot-ghost")
        >>> if response is not NOT_SENT:
        ...     async for chunk in response.iter_text():
        ...         ...
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize TransportClient.

        Args:
            http_client: Optional pre-configured HTTP client (for testing)
            settings: Timeout and pool limits for the client created when
                none is injected (default: get_settings())
        """
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            settings = settings or get_settings()
            self._client = create_http_client(
                timeout_seconds=settings.request_timeout_seconds,
                max_connections=settings.max_connections,
                max_keepalive=settings.max_keepalive_connections,
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close the HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def send(
        self,
        url: str,
        auth_token: str,
        body: dict[str, Any],
        *,
        intent: Optional[str] = None,
        request_id: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> Union[TransportResponse, NotSent]:
        """
        POST `body` as JSON and return once response headers arrive.

        Args:
            url: Completions endpoint URL
            auth_token: Bearer token
            body: JSON request body
            intent: OpenAI-Intent header value
            request_id: Client request id sent as X-Request-Id
            headers: Additional headers
            cancellation: Cancellation handle

        Returns:
            TransportResponse, or NOT_SENT when cancelled before sending

        Raises:
            RequestAbortedError: Cancelled while waiting for response headers
            TransportError: Network failure
        """
        # Last chance to cancel before anything is sent.
        await asyncio.sleep(0)
        if cancellation is not None and cancellation.is_cancellation_requested:
            return NOT_SENT

        request = self._client.build_request(
            "POST",
            url,
            json=body,
            headers=self._build_headers(auth_token, intent, request_id, headers),
        )

        try:
            if cancellation is None:
                response = await self._client.send(request, stream=True)
            else:
                response = await self._send_cancellable(request, cancellation, url)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {url} timed out: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

        logger.debug("Response headers received from %s with status %s", url, response.status_code)
        return TransportResponse(response)

    async def _send_cancellable(
        self,
        request: httpx.Request,
        cancellation: CancellationToken,
        url: str,
    ) -> httpx.Response:
        """Send the request, aborting it if the cancellation handle fires first."""
        send_task = asyncio.ensure_future(self._client.send(request, stream=True))
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            send_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if send_task in done:
            return send_task.result()

        send_task.cancel()
        try:
            late_response = await send_task
        except (asyncio.CancelledError, httpx.HTTPError):
            late_response = None
        if late_response is not None:
            await late_response.aclose()

        logger.debug("Request to %s aborted before response headers", url)
        raise RequestAbortedError(url=url)

    @staticmethod
    def _build_headers(
        auth_token: str,
        intent: Optional[str],
        request_id: Optional[str],
        extra_headers: Optional[dict[str, str]],
    ) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {auth_token}"}
        if request_id:
            headers["X-Request-Id"] = request_id
        if intent:
            headers["OpenAI-Intent"] = intent
        if extra_headers:
            headers.update(extra_headers)
        return headers
