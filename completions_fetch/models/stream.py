"""
Wire Payload Models - completions event stream

Pydantic models for the JSON carried on each `data:` line of the completions
stream. Every field is optional with a default so that a payload missing
fields still parses; unknown fields are ignored. A payload that cannot be
validated at all is treated by the decoder as a malformed line and skipped.

Consumed fields:
    choices[].{index, text, delta{content, role, function_call, tool_calls,
    copilot_annotations}, finish_reason, logprobs, copilot_annotations}
    model, usage, copilot_references, copilot_confirmation, copilot_errors,
    error.message
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    """Base for wire models: unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


# =============================================================================
# Annotations
# =============================================================================


class CopilotAnnotation(_WireModel):
    """
    A single proxy annotation over a span of the completion text.

    The (namespace, id) pair is unique; the proxy re-sends an annotation with
    the same id as it extends it (stop_offset grows, start_offset is fixed).
    """

    id: int = Field(..., description="Annotation id, unique within its namespace")
    start_offset: int = Field(default=0, description="Start offset in the completion text")
    stop_offset: int = Field(default=0, description="Stop offset in the completion text")
    details: dict[str, Any] = Field(default_factory=dict, description="Annotation details")
    citations: Optional[dict[str, str]] = Field(default=None, description="Code citation details")


CopilotNamedAnnotationList = dict[str, list[CopilotAnnotation]]


# =============================================================================
# Out-of-band payloads
# =============================================================================


class CopilotReference(_WireModel):
    """A reference attached by the server to the response."""

    type: str = ""
    id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class CopilotConfirmation(_WireModel):
    """A server request for user confirmation."""

    type: str = ""
    title: Optional[str] = None
    message: Optional[str] = None
    confirmation: Optional[dict[str, Any]] = None

    def is_valid(self) -> bool:
        """A confirmation needs a title, a message and a non-empty confirmation payload."""
        return (
            isinstance(self.title, str)
            and isinstance(self.message, str)
            and bool(self.confirmation)
        )


class CopilotError(_WireModel):
    """A partial error object reported inside the stream."""

    type: str = ""
    code: str = ""
    message: str = ""
    identifier: str = ""


class ErrorJSON(_WireModel):
    """Top-level `error` object."""

    message: str = ""


class ModelUsage(_WireModel):
    """Token usage counters reported by the server."""

    completion_tokens: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0


# =============================================================================
# Choices
# =============================================================================


class LogprobsJSON(_WireModel):
    """The logprobs block of a completions chunk."""

    text_offset: Optional[list[int]] = None
    token_logprobs: Optional[list[Optional[float]]] = None
    top_logprobs: Optional[list[Optional[dict[str, float]]]] = None
    tokens: Optional[list[str]] = None


class FunctionCallJSON(_WireModel):
    """A function-call fragment: the name arrives once, arguments in pieces."""

    name: Optional[str] = None
    arguments: str = ""


class ToolCallJSON(_WireModel):
    """A tool-call fragment."""

    id: Optional[str] = None
    index: Optional[int] = None
    type: str = "function"
    function: FunctionCallJSON = Field(default_factory=FunctionCallJSON)


class DeltaJSON(_WireModel):
    """The chat-style `delta` of a chunk choice."""

    content: Optional[str] = None
    role: Optional[str] = None
    function_call: Optional[FunctionCallJSON] = None
    tool_calls: Optional[list[ToolCallJSON]] = None
    copilot_annotations: Optional[CopilotNamedAnnotationList] = None


class ChoiceJSON(_WireModel):
    """One per-choice delta inside a stream payload."""

    index: int = 0
    text: Optional[str] = None
    delta: Optional[DeltaJSON] = None
    finish_reason: Optional[str] = None
    logprobs: Optional[LogprobsJSON] = None
    copilot_annotations: Optional[CopilotNamedAnnotationList] = None

    def has_newline(self) -> bool:
        """Whether this delta carries a newline in its text or content."""
        if self.text and "\n" in self.text:
            return True
        return bool(self.delta and self.delta.content and "\n" in self.delta.content)


class StreamingResponse(_WireModel):
    """
    One decoded `data:` payload.

    `choices` is None (not empty) when the server sent a payload without a
    choices field, e.g. a confirmation or an error.
    """

    choices: Optional[list[ChoiceJSON]] = None
    error: Optional[ErrorJSON] = None
    # Raw values, validated one by one in the decoder
    copilot_references: Optional[Any] = None
    copilot_confirmation: Optional[Any] = None
    copilot_errors: Optional[Any] = None
    model: Optional[str] = None
    usage: Optional[ModelUsage] = None
