"""
Synthetic completions.

A CompletionFetcher returning canned completions instead of calling the
proxy, for local development and for exercising the code that consumes
choices. The completions go through the same stop-sequence, oracle and
empty-choice handling as live ones, without streaming.
"""

import logging
import uuid
from typing import AsyncIterator, Optional, Sequence

from completions_fetch.auth.tokens import TokenManager
from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.models.requests import CompletionRequest, PostOptions
from completions_fetch.models.responses import APIChoice, CompletionError, CompletionResults, RequestId
from completions_fetch.services.fetcher import CompletionFetcher, FetchResult, post_process_choices
from completions_fetch.streaming.oracle import (
    BlockCompletionOracle,
    RequestDelta,
    as_finish_offset,
    call_oracle,
    never_finished,
)

logger = logging.getLogger(__name__)


CANCELED_DURING_TEST = "canceled during test"


def fake_api_choice(header_request_id: str, choice_index: int, completion_text: str) -> APIChoice:
    """An APIChoice for `completion_text` with fixed log-probabilities."""
    return APIChoice(
        completion_text=completion_text,
        mean_log_prob=0.5,
        mean_alternative_log_prob=0.5,
        num_tokens=-1,
        choice_index=choice_index,
        request_id=RequestId(
            header_request_id=header_request_id,
            server_experiments="dummy",
            deployment_id="dummy",
        ),
        tokens=completion_text.splitlines(keepends=True),
        block_finished=False,
        client_completion_id=str(uuid.uuid4()),
        finish_reason="stop",
    )


def apply_stops(completion: str, stops: Optional[Sequence[str]]) -> str:
    """Cut `completion` at the earliest stop sequence it contains."""
    stop_offset = -1
    for stop in stops or []:
        offset = completion.find(stop)
        if offset != -1 and (stop_offset == -1 or offset < stop_offset):
            stop_offset = offset
    if stop_offset == -1:
        return completion
    return completion[:stop_offset]


async def fake_api_choices(
    post_options: Optional[PostOptions],
    finished_cb: BlockCompletionOracle,
    completions: Sequence[str],
) -> AsyncIterator[APIChoice]:
    """
    Yield one APIChoice per completion.

    The oracle is asked once per completion, with the whole text; it is not
    used to stop early since nothing is being streamed.
    """
    header_request_id = str(uuid.uuid4())
    stops = post_options.stop if post_options is not None else None
    for choice_index, completion in enumerate(completions):
        completion = apply_stops(completion, stops)
        finish_offset = as_finish_offset(
            await call_oracle(
                finished_cb,
                completion,
                RequestDelta(text=completion, index=choice_index, finished=True),
            )
        )
        if finish_offset is not None:
            completion = completion[:finish_offset]
        choice = fake_api_choice(header_request_id, choice_index, completion)
        yield choice.model_copy(update={"block_finished": finish_offset is not None})


class SyntheticCompletionFetcher(CompletionFetcher):
    """
    Returns the configured completions on the first call.

    Later calls return the same number of empty completions (which the
    empty-choice filter removes): a follow-up request made to extend a
    completion has nothing more to add.

    Example:
        >>> fetcher = SyntheticCompletionFetcher(["return 1\\n"])
        >>> result = await fetcher.fetch_and_stream_completions(request)
    """

    def __init__(
        self,
        completions: Sequence[str],
        token_manager: Optional[TokenManager] = None,
    ) -> None:
        self._completions = list(completions)
        self._token_manager = token_manager
        self._was_called = False

    async def fetch_and_stream_completions(
        self,
        request: CompletionRequest,
        finished_cb: BlockCompletionOracle = never_finished,
        cancellation: Optional[CancellationToken] = None,
    ) -> FetchResult:
        if self._token_manager is not None:
            # only checks that a token can be had
            await self._token_manager.get_token()
        if cancellation is not None and cancellation.is_cancellation_requested:
            return CompletionError.canceled(CANCELED_DURING_TEST)

        if not self._was_called:
            self._was_called = True
            completions = self._completions
        else:
            completions = ["" for _ in self._completions]

        logger.debug("Returning %d synthetic completions", len(completions))
        choices = post_process_choices(fake_api_choices(request.post_options, finished_cb, completions))
        return CompletionResults(choices=choices, get_processing_time=lambda: 0)
