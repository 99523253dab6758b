"""
Block-completion oracle contract.

The oracle is supplied by the caller and decides, from the text accumulated
so far for one choice, whether the current block is finished and where to
truncate it. The decoder calls it on every delta containing a newline, on a
server finish reason, and once more with `finished=True` when the stream ends.
It also receives zero-text calls carrying out-of-band payloads
(confirmations, references, errors).

Calling contract:
    - may be a plain function or a coroutine function
    - calls for one choice index are strictly sequential in event order,
      never concurrent
    - return None: not finished, keep streaming, do not yield yet
    - return int k: finished, truncate the text at offset k
    - return SolutionDecision: explicit decision
"""

import inspect
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol, Union

from completions_fetch.models.responses import APIJsonData, RequestId
from completions_fetch.models.stream import CopilotConfirmation, CopilotError, CopilotReference
from completions_fetch.streaming.annotations import StreamCopilotAnnotations


@dataclass(frozen=True)
class SolutionDecision:
    """What the decoder should do with a choice after an oracle call."""

    yield_solution: bool
    continue_streaming: bool
    finish_offset: Optional[int] = None


@dataclass
class RequestDelta:
    """Context passed to the oracle along with the accumulated text."""

    text: str
    index: Optional[int] = None
    request_id: Optional[RequestId] = None
    annotations: Optional[StreamCopilotAnnotations] = None
    copilot_errors: Optional[list[CopilotError]] = None
    copilot_confirmation: Optional[CopilotConfirmation] = None
    copilot_references: Optional[list[CopilotReference]] = None
    get_api_json_data: Optional[Callable[[], APIJsonData]] = field(default=None, repr=False)
    finished: bool = False


OracleResult = Union[SolutionDecision, int, None]


class BlockCompletionOracle(Protocol):
    """Callable deciding whether a choice's block is finished."""

    def __call__(
        self, text: str, delta: RequestDelta
    ) -> Union[OracleResult, Awaitable[OracleResult]]: ...


def never_finished(text: str, delta: RequestDelta) -> None:
    """Default oracle: let the server decide when every choice ends."""
    return None


async def call_oracle(oracle: BlockCompletionOracle, text: str, delta: RequestDelta) -> OracleResult:
    """Invoke the oracle, awaiting the result when it is awaitable."""
    result = oracle(text, delta)
    if inspect.isawaitable(result):
        result = await result
    return result


def as_solution_decision(result: OracleResult = None) -> SolutionDecision:
    """Normalise an oracle result into a SolutionDecision."""
    if result is None:
        return SolutionDecision(yield_solution=False, continue_streaming=True)
    if isinstance(result, SolutionDecision):
        return result
    # bool is an int subclass; it is not a valid offset
    if isinstance(result, int) and not isinstance(result, bool):
        return SolutionDecision(yield_solution=True, continue_streaming=False, finish_offset=result)
    raise TypeError(f"Unsupported oracle result: {result!r}")


def as_finish_offset(result: OracleResult) -> Optional[int]:
    """Offset carried by an oracle result, if any."""
    if result is None:
        return None
    return as_solution_decision(result).finish_offset
