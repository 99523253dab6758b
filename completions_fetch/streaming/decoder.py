"""
Stream Decoder - completions event stream to finished choices

SSEProcessor consumes the `data:`-prefixed event stream of one response and
lazily yields a FinishedCompletion per choice as each closes.

Session states:
    receiving: reading body chunks, accumulating per-choice deltas
    draining: `[DONE]` seen or body exhausted, flushing open choices
    closed: body destroyed, iterator finished

Choice lifecycle per index:
    absent -> accumulating -> closed (tombstone, terminal)

Pattern: async generator with try/finally resource release
"""

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from completions_fetch.clients.transport import TransportResponse
from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.core.exceptions import StreamDecodeError
from completions_fetch.models.responses import FinishedCompletion
from completions_fetch.models.stream import (
    ChoiceJSON,
    CopilotConfirmation,
    CopilotError,
    CopilotReference,
    ModelUsage,
    StreamingResponse,
)
from completions_fetch.observability.metrics import record_finish_reason
from completions_fetch.streaming.accumulator import ChoiceAccumulator, ChunkStats
from completions_fetch.streaming.oracle import (
    BlockCompletionOracle,
    RequestDelta,
    SolutionDecision,
    as_solution_decision,
    call_oracle,
    never_finished,
)

logger = logging.getLogger(__name__)


DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"

FINISH_REASON_ITERATION_DONE = "iteration done"
"""Reason given to a choice that never received a finish reason of its own."""

FINISH_REASON_CLIENT_TRIMMED = "client-trimmed"
"""Reason recorded when the oracle, not the server, finished a choice."""


def split_chunk(chunk: str) -> tuple[list[str], str]:
    """
    Split a chunk of data into complete lines and a trailing remainder.

    Empty lines are dropped. The remainder is the text after the last newline,
    which may be the start of a line continued in the next chunk.

    Example:
        >>> split_chunk("data: a\\n\\ndata: b\\ndata: c")
        (['data: a', 'data: b'], 'data: c')
    """
    lines = chunk.split("\n")
    remainder = lines.pop()
    return [line for line in lines if line != ""], remainder


_CONFIRMATION_ADAPTER = TypeAdapter(Optional[CopilotConfirmation])
_REFERENCES_ADAPTER = TypeAdapter(Optional[list[CopilotReference]])
_ERRORS_ADAPTER = TypeAdapter(Optional[list[CopilotError]])


def _validate_side_channel(adapter: TypeAdapter, value: Any, name: str) -> Any:
    """Validate one out-of-band field, returning None when it is malformed."""
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        logger.warning("Ignoring malformed copilot %s: %s", name, e.error_count())
        return None


@dataclass
class _ChoiceOutcome:
    """Result of applying one choice delta."""

    finished: Optional[FinishedCompletion] = None
    pending_finish_reason: Optional[str] = None
    cancelled: bool = False


class SSEProcessor:
    """
    Decodes one streaming completions response.

    Args:
        expected_num_choices: Number of choices requested (`n`)
        response: Response whose body has not been read yet
        drop_completion_reasons: Finish reasons whose choices are discarded
        cancellation: Cancellation handle checked at every suspension point

    Example:
        >>> processor = SSEProcessor(1, response)
        >>> async for finished in processor.process_sse(oracle):
        ...     print(finished.truncated_text)
    """

    def __init__(
        self,
        expected_num_choices: int,
        response: TransportResponse,
        drop_completion_reasons: Optional[Sequence[str]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        if response.destroyed:
            raise StreamDecodeError("Unable to read response body")
        self.expected_num_choices = expected_num_choices
        self.response = response
        self.request_id = response.request_id
        self.drop_completion_reasons = list(drop_completion_reasons or [])
        self.cancellation = cancellation
        # None marks a closed (tombstoned) choice
        self.solutions: dict[int, Optional[ChoiceAccumulator]] = {}
        self.stats = ChunkStats()

    async def process_sse(
        self, finished_cb: BlockCompletionOracle = never_finished
    ) -> AsyncIterator[FinishedCompletion]:
        """
        Yield finished choices as they close.

        The response body is destroyed when the iterator finishes, is closed
        early with aclose(), or observes cancellation.
        """
        inner = self._process_sse_inner(finished_cb)
        try:
            async for finished in inner:
                yield finished
        finally:
            await inner.aclose()
            await self._cancel()
            logger.debug(
                "Request done: header request id [%s], model deployment id [%s]",
                self.request_id.header_request_id,
                self.request_id.deployment_id,
            )
            logger.debug("Request stats: %s", self.stats)

    async def _process_sse_inner(
        self, finished_cb: BlockCompletionOracle
    ) -> AsyncIterator[FinishedCompletion]:
        # Pieces of the stream that have not been fully processed yet
        extra_data = ""

        current_finish_reason: Optional[str] = None
        model: Optional[str] = None
        usage: Optional[ModelUsage] = None
        all_done = False

        async with aclosing(self.response.iter_text()) as chunks:
            async for chunk in chunks:
                if await self._maybe_cancel("after awaiting body chunk"):
                    return

                logger.debug("Chunk: %r", chunk)
                data_lines, extra_data = split_chunk(extra_data + chunk)

                for data_line in data_lines:
                    if data_line.startswith(":"):
                        # event-stream comment / keep-alive
                        continue

                    payload = self._strip_prefix(data_line)
                    if payload == DONE_MARKER:
                        remaining = self._finish_solutions(current_finish_reason, model, usage, finished_cb)
                        async with aclosing(remaining):
                            async for finished in remaining:
                                yield finished
                        return

                    # Only a function call's finish reason carries over to [DONE]
                    current_finish_reason = None

                    response = self._parse_payload(data_line, payload)
                    if response is None:
                        continue

                    if not await self._route_out_of_band(response, payload, finished_cb):
                        return
                    if response.choices is None:
                        continue

                    if model is None and response.model:
                        model = response.model
                    if usage is None and response.usage is not None:
                        usage = response.usage

                    for choice in response.choices:
                        outcome = await self._process_choice(choice, finished_cb, model, usage)
                        if outcome.cancelled:
                            return
                        if outcome.pending_finish_reason is not None:
                            current_finish_reason = outcome.pending_finish_reason
                        if outcome.finished is not None:
                            yield outcome.finished
                            if await self._maybe_cancel("after yielding finished choice"):
                                return

                    if self._all_solutions_done():
                        all_done = True
                        break

                if all_done:
                    # nothing left to read for; drop buffered data without error
                    extra_data = ""
                    break

        # No [DONE]: flush whatever is still open
        for index, solution in list(self.solutions.items()):
            if solution is None or solution.yielded:
                continue
            record_finish_reason(FINISH_REASON_ITERATION_DONE, model or "")
            self.stats.mark_yielded(index)
            solution.yielded = True
            self.solutions[index] = None
            yield self._finished(solution, index, None, FINISH_REASON_ITERATION_DONE, model, usage)
            if await self._maybe_cancel("after yielding after iteration done"):
                return

        # An error object can be left over in the buffer
        if extra_data:
            self._log_trailing_error(extra_data)

    async def _route_out_of_band(
        self,
        response: StreamingResponse,
        payload: str,
        finished_cb: BlockCompletionOracle,
    ) -> bool:
        """
        Hand confirmations, references and errors to the oracle as zero-text calls.

        Each side-channel field is validated on its own; an invalid one is
        logged and skipped while the rest of the payload is still processed.
        Returns False when cancellation was observed.
        """
        confirmation = _validate_side_channel(_CONFIRMATION_ADAPTER, response.copilot_confirmation, "confirmation")
        if confirmation is not None and confirmation.is_valid():
            await call_oracle(
                finished_cb, "", RequestDelta(text="", request_id=self.request_id, copilot_confirmation=confirmation)
            )
            if await self._maybe_cancel("after awaiting confirmation callback"):
                return False

        references = _validate_side_channel(_REFERENCES_ADAPTER, response.copilot_references, "references")
        if references:
            await call_oracle(
                finished_cb,
                "",
                RequestDelta(text="", request_id=self.request_id, copilot_references=references),
            )
            if await self._maybe_cancel("after awaiting references callback"):
                return False

        if response.choices is not None:
            return True

        if not response.copilot_references and response.copilot_confirmation is None:
            if response.error is not None:
                logger.error("Error in response: %s", response.error.message)
            else:
                logger.error("Unexpected response with no choices or error: %s", payload)

        # Payloads without choices may still carry errors
        errors = _validate_side_channel(_ERRORS_ADAPTER, response.copilot_errors, "errors")
        if errors:
            await call_oracle(
                finished_cb,
                "",
                RequestDelta(text="", request_id=self.request_id, copilot_errors=errors),
            )
            if await self._maybe_cancel("after awaiting errors callback"):
                return False
        return True

    async def _process_choice(
        self,
        choice: ChoiceJSON,
        finished_cb: BlockCompletionOracle,
        model: Optional[str],
        usage: Optional[ModelUsage],
    ) -> _ChoiceOutcome:
        """Apply one choice delta and decide whether the choice finishes."""
        logger.debug("Choice: %s", choice)
        self.stats.add(choice.index)

        if choice.index not in self.solutions:
            self.solutions[choice.index] = ChoiceAccumulator()
        solution = self.solutions[choice.index]
        if solution is None:
            # already closed
            return _ChoiceOutcome()

        solution.append(choice)

        # Ask the oracle after every newline so it can finish early, and on a
        # finish reason so the final text gets truncated.
        decision = SolutionDecision(yield_solution=False, continue_streaming=True)
        if choice.finish_reason or choice.has_newline():
            text = solution.joined_text()
            result = await call_oracle(
                finished_cb,
                text,
                RequestDelta(
                    text=text,
                    index=choice.index,
                    request_id=self.request_id,
                    annotations=solution.copilot_annotations,
                    copilot_references=solution.copilot_references,
                    get_api_json_data=solution.to_api_json_data,
                    finished=bool(choice.finish_reason),
                ),
            )
            decision = as_solution_decision(result)
            if await self._maybe_cancel("after awaiting oracle"):
                return _ChoiceOutcome(cancelled=True)

        # A function call may be followed by more finish reasons; hold it open.
        if choice.finish_reason and solution.function_call.name is not None:
            return _ChoiceOutcome(pending_finish_reason=choice.finish_reason)

        if choice.finish_reason:
            decision = replace(decision, yield_solution=True, continue_streaming=False)
        if not decision.yield_solution:
            return _ChoiceOutcome()

        record_finish_reason(choice.finish_reason or FINISH_REASON_CLIENT_TRIMMED, model or "")

        outcome = _ChoiceOutcome()
        if choice.finish_reason in self.drop_completion_reasons:
            logger.debug("Dropping choice %s with finish reason %s", choice.index, choice.finish_reason)
            self.solutions[choice.index] = None
        elif not solution.yielded:
            self.stats.mark_yielded(choice.index)
            solution.yielded = True
            outcome.finished = self._finished(
                solution, choice.index, decision.finish_offset, choice.finish_reason, model, usage
            )

        if not decision.continue_streaming:
            self.solutions[choice.index] = None
        return outcome

    async def _finish_solutions(
        self,
        current_finish_reason: Optional[str],
        model: Optional[str],
        usage: Optional[ModelUsage],
        finished_cb: BlockCompletionOracle,
    ) -> AsyncIterator[FinishedCompletion]:
        """Yield the choices still open at `[DONE]`."""
        reason = current_finish_reason or FINISH_REASON_ITERATION_DONE
        for index, solution in list(self.solutions.items()):
            if solution is None:
                continue
            # the oracle always sees the final text
            text = solution.joined_text()
            result = await call_oracle(
                finished_cb,
                text,
                RequestDelta(
                    text=text,
                    index=index,
                    request_id=self.request_id,
                    annotations=solution.copilot_annotations,
                    copilot_references=solution.copilot_references,
                    get_api_json_data=solution.to_api_json_data,
                    finished=True,
                ),
            )
            if await self._maybe_cancel("after awaiting oracle on DONE"):
                return
            self.solutions[index] = None
            if solution.yielded:
                continue

            finish_offset = as_solution_decision(result).finish_offset if result is not None else None
            record_finish_reason(reason, model or "")
            self.stats.mark_yielded(index)
            solution.yielded = True
            yield self._finished(solution, index, finish_offset, reason, model, usage)
            if await self._maybe_cancel("after yielding on DONE"):
                return

    # =========================================================================
    # Helpers
    # =========================================================================

    def _finished(
        self,
        solution: ChoiceAccumulator,
        index: int,
        finish_offset: Optional[int],
        reason: Optional[str],
        model: Optional[str],
        usage: Optional[ModelUsage],
    ) -> FinishedCompletion:
        return FinishedCompletion(
            solution=solution.to_api_json_data(),
            finish_offset=finish_offset,
            reason=reason,
            request_id=self.request_id,
            index=index,
            model=model,
            usage=usage,
        )

    @staticmethod
    def _strip_prefix(data_line: str) -> str:
        if data_line.startswith(DATA_PREFIX):
            return data_line[len(DATA_PREFIX):].strip()
        return data_line.strip()

    @staticmethod
    def _parse_payload(data_line: str, payload: str) -> Optional[StreamingResponse]:
        try:
            return StreamingResponse.model_validate_json(payload)
        except ValidationError:
            logger.error("Error parsing JSON stream data: %s", data_line)
            return None

    @staticmethod
    def _log_trailing_error(extra_data: str) -> None:
        try:
            trailing = json.loads(SSEProcessor._strip_prefix(extra_data))
        except ValueError:
            logger.error("Error parsing extra data: %s", extra_data)
            return
        if isinstance(trailing, dict) and isinstance(trailing.get("error"), dict):
            logger.error("Error in response: %s", trailing["error"].get("message"))

    def _all_solutions_done(self) -> bool:
        """Whether every expected choice index has been closed."""
        return len(self.solutions) == self.expected_num_choices and all(
            solution is None for solution in self.solutions.values()
        )

    async def _maybe_cancel(self, description: str) -> bool:
        """Destroy the body and return True when cancellation was requested."""
        if self.cancellation is not None and self.cancellation.is_cancellation_requested:
            logger.debug("Cancelled: %s", description)
            await self._cancel()
            return True
        return False

    async def _cancel(self) -> None:
        await self.response.destroy()
