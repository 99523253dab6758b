"""
Completion Fetch Service

This module implements the completion fetch client: it posts one completion
request to the proxy and turns the response into either a lazy stream of
choices or a closed CompletionError.

Request lifecycle:
    idle -> (breaker engaged? -> canceled) -> sending -> awaiting-response
         -> success | failed | canceled

Pattern: Service Layer (orchestrates transport, decoder and breaker)
Pattern: Dependency Injection (transport, token manager, notifier, settings)
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Union

from completions_fetch.auth.tokens import CopilotToken, Subscription, TokenManager, TokenNotifier
from completions_fetch.clients.transport import NOT_SENT, NotSent, TransportClient, TransportResponse
from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.core.config import Settings, get_settings
from completions_fetch.core.exceptions import RequestAbortedError, TransportError
from completions_fetch.models.requests import CompletionRequest, build_request_body, ui_kind_to_intent
from completions_fetch.models.responses import APIChoice, CompletionError, CompletionResults
from completions_fetch.observability.logging import fetch_context, get_logger
from completions_fetch.observability.metrics import record_fetch_outcome
from completions_fetch.resilience.circuit_breaker import (
    REASON_QUOTA_EXHAUSTED,
    REASON_RATE_LIMITED,
    CompletionsCircuitBreaker,
)
from completions_fetch.streaming.choices import prepare_solution_for_return
from completions_fetch.streaming.decoder import SSEProcessor
from completions_fetch.streaming.oracle import BlockCompletionOracle, never_finished
from completions_fetch.utils.iterables import async_iterable_filter, async_iterable_map

logger = logging.getLogger(__name__)


COMPLETIONS_ENDPOINT = "completions"

CANCELED_BEFORE_REQUEST = "before fetch request"
CANCELED_DURING_REQUEST = "during fetch request"
CANCELED_AFTER_REQUEST = "after fetch request"


FetchResult = Union[CompletionResults, CompletionError]


def get_proxy_engine_url(
    token: CopilotToken,
    model_id: str,
    endpoint: str = COMPLETIONS_ENDPOINT,
    default_proxy_url: Optional[str] = None,
) -> str:
    """
    Build `<proxy>/v1/engines/<model_id>/<endpoint>`.

    The proxy base comes from the token's endpoints when it advertises one,
    else from `default_proxy_url` (settings).
    """
    base = token.endpoints.get("proxy") or default_proxy_url or get_settings().proxy_url
    return f"{base.rstrip('/')}/v1/engines/{model_id}/{endpoint}"


def post_process_choices(choices: AsyncIterator[APIChoice]) -> AsyncIterator[APIChoice]:
    """Drop choices whose text is empty or whitespace only."""
    return async_iterable_filter(choices, lambda choice: choice.completion_text.strip() != "")


class CompletionFetcher(ABC):
    """Fetches completion choices for one request."""

    @abstractmethod
    async def fetch_and_stream_completions(
        self,
        request: CompletionRequest,
        finished_cb: BlockCompletionOracle = never_finished,
        cancellation: Optional[CancellationToken] = None,
    ) -> FetchResult:
        """
        Fetch completions for `request`.

        Returns:
            CompletionResults with a lazy choice stream, or CompletionError
        """


class LiveCompletionFetcher(CompletionFetcher):
    """
    Fetcher talking to the completions proxy.

    The circuit breaker is owned by the instance and shared by all of its
    concurrent requests.

    Example:
        >>> fetcher = LiveCompletionFetcher(TransportClient(), token_manager, notifier)
        >>> result = await fetcher.fetch_and_stream_completions(request, oracle)
        >>> if result.type == "success":
        ...     async for choice in result.choices:
        ...         print(choice.completion_text)
    """

    def __init__(
        self,
        transport: TransportClient,
        token_manager: TokenManager,
        token_notifier: Optional[TokenNotifier] = None,
        settings: Optional[Settings] = None,
        breaker: Optional[CompletionsCircuitBreaker] = None,
    ) -> None:
        """
        Initialize LiveCompletionFetcher.

        Args:
            transport: Transport client used to post requests
            token_manager: Source of proxy tokens
            token_notifier: Token refresh notifications (clears the quota breaker)
            settings: Engine settings (default: get_settings())
            breaker: Circuit breaker (default: a new one per fetcher)
        """
        self._transport = transport
        self._token_manager = token_manager
        self._token_notifier = token_notifier
        self._settings = settings or get_settings()
        self._breaker = breaker or CompletionsCircuitBreaker()
        self._quota_subscription: Optional[Subscription] = None

    @property
    def breaker(self) -> CompletionsCircuitBreaker:
        return self._breaker

    async def fetch_and_stream_completions(
        self,
        request: CompletionRequest,
        finished_cb: BlockCompletionOracle = never_finished,
        cancellation: Optional[CancellationToken] = None,
    ) -> FetchResult:
        """
        Fetch completions and stream the choices back lazily.

        Args:
            request: The completion request
            finished_cb: Block-completion oracle
            cancellation: Cancellation handle

        Returns:
            CompletionResults on HTTP 200, CompletionError otherwise

        Raises:
            TransportError: Network failure
        """
        with fetch_context(
            request.our_request_id,
            engine=request.engine_model_id,
            ui_kind=request.ui_kind.value,
        ):
            result = await self._fetch(request, finished_cb, cancellation)
        if isinstance(result, CompletionError):
            record_fetch_outcome(result.type, result.reason)
        else:
            record_fetch_outcome(result.type)
        return result

    async def _fetch(
        self,
        request: CompletionRequest,
        finished_cb: BlockCompletionOracle,
        cancellation: Optional[CancellationToken],
    ) -> FetchResult:
        disabled_reason = self._breaker.disabled_reason
        if disabled_reason is not None:
            return CompletionError.canceled(disabled_reason)

        token = self._token_manager.token or await self._token_manager.get_token()

        try:
            response = await self.fetch_with_parameters(request, token, cancellation)
        except RequestAbortedError:
            return CompletionError.canceled(CANCELED_DURING_REQUEST)
        if response == NOT_SENT:
            return CompletionError.canceled(CANCELED_BEFORE_REQUEST)

        if cancellation is not None and cancellation.is_cancellation_requested:
            # The server is hopefully notified that no more data is wanted
            try:
                await response.destroy()
            except Exception:
                logger.exception("Error destroying stream")
            return CompletionError.canceled(CANCELED_AFTER_REQUEST)

        if response.status != 200:
            return await self.handle_error(response)

        processor = SSEProcessor(
            request.count,
            response,
            self._settings.drop_completion_reasons,
            cancellation,
        )
        choices = async_iterable_map(processor.process_sse(finished_cb), prepare_solution_for_return)
        return CompletionResults(
            choices=post_process_choices(choices),
            get_processing_time=lambda: response.processing_time_ms,
        )

    async def fetch_with_parameters(
        self,
        request: CompletionRequest,
        token: CopilotToken,
        cancellation: Optional[CancellationToken] = None,
    ) -> Union[TransportResponse, NotSent]:
        """
        Build the request body and post it.

        Returns:
            The response, or NOT_SENT when cancelled before sending

        Raises:
            RequestAbortedError: Cancelled while awaiting response headers
            TransportError: Network failure
        """
        body = build_request_body(
            request,
            max_tokens=self._settings.max_completion_tokens,
            disable_logprobs=self._settings.disable_logprobs,
        )
        url = get_proxy_engine_url(
            token, request.engine_model_id, COMPLETIONS_ENDPOINT, self._settings.proxy_url
        )
        request_log = get_logger(__name__, level=self._settings.log_level)
        request_log.debug("completion request sent", url=url, n=request.count)

        started = time.monotonic()
        try:
            response = await self._transport.send(
                url,
                token.token,
                body,
                intent=ui_kind_to_intent(request.ui_kind),
                request_id=request.our_request_id,
                headers=request.headers,
                cancellation=cancellation,
            )
        except RequestAbortedError:
            request_log.info("completion request cancelled", url=url)
            raise
        except TransportError as e:
            request_log.info(
                "completion request rejected",
                url=url,
                error=str(e),
                elapsed_ms=_elapsed_ms(started),
            )
            raise

        if response == NOT_SENT:
            return response

        header_request_id = response.request_id.header_request_id
        if header_request_id and header_request_id != request.our_request_id:
            # Not guaranteed to match ours; the server's id is the one reported
            logger.debug(
                "Server request id %s differs from ours %s", header_request_id, request.our_request_id
            )
        request_log.info(
            "completion request finished",
            url=url,
            status=response.status,
            header_request_id=header_request_id,
            elapsed_ms=_elapsed_ms(started),
        )
        return response

    async def handle_error(self, response: TransportResponse) -> CompletionError:
        """Map a non-200 response to a CompletionError, applying its side effects."""
        text = await response.text()
        status = response.status

        if status == 402:
            self._breaker.engage(REASON_QUOTA_EXHAUSTED)
            self._clear_breaker_on_quota_restored()
            return CompletionError.failed(REASON_QUOTA_EXHAUSTED)

        if status == 466:
            logger.info(text)
            return CompletionError.failed(f"client not supported: {text}")

        is_client_error = 400 <= status < 500
        if is_client_error and not response.headers.get(self._settings.provider_request_id_header):
            logger.error(
                "Last response was a %s error and does not appear to originate from the completions "
                "provider. Is a proxy or firewall intercepting this request?",
                status,
            )
        elif is_client_error:
            logger.warning("Response status was %s: %s", status, text)
        else:
            logger.warning("Last response was a %s error", status)

        if status in (401, 403):
            # Fetch a new token on the next request
            self._token_manager.reset_token(status)
            return CompletionError.failed(f"token expired or invalid: {status}")

        if status == 429:
            cooldown = self._settings.rate_limit_cooldown_seconds
            self._breaker.engage(REASON_RATE_LIMITED, clear_after_seconds=cooldown)
            logger.warning("Rate limited by server. Denying completions for the next %s seconds.", cooldown)
            return CompletionError.failed(REASON_RATE_LIMITED)

        if status == 499:
            logger.info("Cancelled by server")
            return CompletionError.failed("canceled by server")

        logger.error("Unhandled status from server: %s %s", status, text)
        return CompletionError.failed(f"unhandled status from server: {status} {text}")

    def _clear_breaker_on_quota_restored(self) -> None:
        """Clear the quota breaker on the first refreshed token that has quota again."""
        if self._quota_subscription is not None:
            return
        if self._token_notifier is None:
            logger.warning("No token notifier; quota breaker stays engaged")
            return

        def on_token(token: CopilotToken) -> None:
            if token.completions_quota_exceeded:
                return
            self._breaker.clear(REASON_QUOTA_EXHAUSTED)
            if self._quota_subscription is not None:
                self._quota_subscription.dispose()
                self._quota_subscription = None

        self._quota_subscription = self._token_notifier.on_token(on_token)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
