"""
Response Models - finished completions and fetch outcomes

This module contains the value types produced by the engine:

- RequestId: identifiers the server attached to the response
- APIJsonData: immutable snapshot of everything accumulated for one choice
- FinishedCompletion: one closed choice, as emitted by the stream decoder
- APIChoice: a finished completion after truncation, ready for the caller
- CompletionResults / CompletionError: the closed outcome of a fetch
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from completions_fetch.models.stream import CopilotNamedAnnotationList, ModelUsage


# =============================================================================
# Request identifiers
# =============================================================================


class RequestId(BaseModel):
    """
    Identifiers read from the response headers.

    Attributes:
        header_request_id: `x-request-id` (hopefully equal to ours, not guaranteed)
        server_experiments: `X-Copilot-Experiment`
        deployment_id: `azureml-model-deployment`
    """

    model_config = ConfigDict(frozen=True)

    header_request_id: str = Field(default="", description="Server request id")
    server_experiments: str = Field(default="", description="Server experiment assignment")
    deployment_id: str = Field(default="", description="Model deployment id")


# =============================================================================
# Accumulated choice data
# =============================================================================


class APILogprobs(BaseModel):
    """Flattened logprob arrays for a whole choice."""

    model_config = ConfigDict(frozen=True)

    text_offset: list[int] = Field(default_factory=list)
    token_logprobs: list[Optional[float]] = Field(default_factory=list)
    top_logprobs: list[Optional[dict[str, float]]] = Field(default_factory=list)
    tokens: list[str] = Field(default_factory=list)


class ToolCall(BaseModel):
    """A tool call reassembled from stream fragments."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


class FunctionCall(BaseModel):
    """A legacy function call reassembled from stream fragments."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    arguments: str = ""


class APIJsonData(BaseModel):
    """
    Snapshot of one choice's accumulated data.

    Attributes:
        text: Full text received, before any truncation
        tokens: Text fragments in arrival order; joining them yields `text`
        logprobs: Flattened logprobs, None when the server sent none
        copilot_annotations: Annotation table, namespace -> annotations
        finish_reason: Server finish reason, "stop" when none was sent
        tool_calls: Reassembled tool calls
        function_call: Reassembled function call, None when never started
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    tokens: list[str] = Field(default_factory=list)
    logprobs: Optional[APILogprobs] = None
    copilot_annotations: CopilotNamedAnnotationList = Field(default_factory=dict)
    finish_reason: str = "stop"
    tool_calls: list[ToolCall] = Field(default_factory=list)
    function_call: Optional[FunctionCall] = None


class FinishedCompletion(BaseModel):
    """
    A single finished choice emitted by the stream decoder.

    Created once per choice index, emitted once, never mutated.

    Attributes:
        solution: Snapshot of the accumulated choice data (pre-truncation text)
        finish_offset: Offset into solution.text where the block finishes, if
            the oracle decided to truncate
        reason: Why the choice finished (server finish reason or
            "iteration done")
        request_id: Server identifiers for the response
        index: Choice index
        model: Model name, when the server reported one
        usage: Token usage, when the server reported it
    """

    model_config = ConfigDict(frozen=True)

    solution: APIJsonData
    finish_offset: Optional[int] = None
    reason: Optional[str] = None
    request_id: RequestId = Field(default_factory=RequestId)
    index: int = 0
    model: Optional[str] = None
    usage: Optional[ModelUsage] = None

    @property
    def text(self) -> str:
        """Full text before truncation."""
        return self.solution.text

    @property
    def truncated_text(self) -> str:
        """Text truncated at finish_offset when one was decided."""
        if self.finish_offset is None:
            return self.solution.text
        return self.solution.text[: self.finish_offset]


class APIChoice(BaseModel):
    """
    A completion candidate returned to the caller.

    Attributes:
        completion_text: Text after truncation at the block finish offset
        mean_log_prob: Mean token logprob over the first tokens, if known
        mean_alternative_log_prob: Mean best-alternative logprob, if known
        choice_index: Index of the choice in the response
        request_id: Server identifiers for the response
        tokens: Text fragments as received
        num_tokens: len(tokens)
        block_finished: Whether the oracle truncated the completion
        copilot_annotations: Annotations attached by the proxy
        client_completion_id: Unique id created on the client
        finish_reason: Reason the server gave for the end of the stream
        tool_calls: Reassembled tool calls
    """

    completion_text: str
    mean_log_prob: Optional[float] = None
    mean_alternative_log_prob: Optional[float] = None
    choice_index: int
    request_id: RequestId
    tokens: list[str] = Field(default_factory=list)
    num_tokens: int = 0
    block_finished: bool = False
    copilot_annotations: Optional[CopilotNamedAnnotationList] = None
    client_completion_id: str
    finish_reason: str = "stop"
    tool_calls: list[ToolCall] = Field(default_factory=list)


# =============================================================================
# Fetch outcomes
# =============================================================================


@dataclass(frozen=True)
class CompletionResults:
    """
    Successful fetch: a lazy stream of choices.

    The caller must drain `choices` or call its `aclose()` so the response
    body is released.
    """

    choices: AsyncIterator[APIChoice]
    get_processing_time: Callable[[], int]
    type: Literal["success"] = "success"


@dataclass(frozen=True)
class CompletionError:
    """
    Fetch that produced no choices.

    `failed` is a terminal problem worth surfacing (auth, quota, unsupported
    client, unexpected status). `canceled` means the caller or the circuit
    breaker chose not to proceed.
    """

    type: Literal["failed", "canceled"]
    reason: str

    @classmethod
    def failed(cls, reason: str) -> "CompletionError":
        return cls(type="failed", reason=reason)

    @classmethod
    def canceled(cls, reason: str) -> "CompletionError":
        return cls(type="canceled", reason=reason)

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "reason": self.reason}
