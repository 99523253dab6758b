"""
Request Models - completion request and request-body construction

A CompletionRequest is built once per completion opportunity by the caller
(the prompt pipeline lives outside this package) and never mutated. The
fetcher turns it into the JSON body posted to the proxy with
build_request_body().
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CopilotUiKind(str, Enum):
    """Surface that asked for the completion; selects the OpenAI-Intent header."""

    GHOST_TEXT = "ghostText"
    PANEL = "synthesize"


_INTENT_BY_UI_KIND = {
    CopilotUiKind.GHOST_TEXT: "copilot-ghost",
    CopilotUiKind.PANEL: "copilot-panel",
}


def ui_kind_to_intent(ui_kind: CopilotUiKind) -> Optional[str]:
    """Map a UI kind to the OpenAI-Intent header value."""
    return _INTENT_BY_UI_KIND.get(ui_kind)


# =============================================================================
# Request components
# =============================================================================


class Prompt(BaseModel):
    """
    Prompt text around the cursor.

    Attributes:
        prefix: Document text before the cursor (sent as `prompt`)
        suffix: Document text after the cursor
        context: Extra context lines; when present `prefix` only holds the
            document prefix
    """

    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    suffix: str = ""
    context: Optional[list[str]] = None


class CompletionRequestExtra(BaseModel):
    """
    Provider-specific request arguments that do not exist in the OpenAI API.

    Opaque to the decoder; serialised under `extra` without unset fields.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    language: Optional[str] = None
    trim_by_indentation: Optional[bool] = None
    force_indent: Optional[int] = None
    next_indent: Optional[int] = None
    test_completions: Optional[list[str]] = None
    prompt_tokens: Optional[int] = None
    suffix_tokens: Optional[int] = None
    context: Optional[list[str]] = None


class PostOptions(BaseModel):
    """Overrides applied on top of the computed request fields."""

    model_config = ConfigDict(frozen=True)

    max_tokens: Optional[int] = None
    n: Optional[int] = None
    temperature: Optional[float] = Field(default=None, ge=0.0)
    top_p: Optional[float] = Field(default=None, ge=0.0)
    stop: Optional[list[str]] = None
    logprobs: Optional[int] = None
    logit_bias: Optional[dict[str, float]] = None
    code_annotations: Optional[bool] = None


class CompletionRequest(BaseModel):
    """
    Immutable completion request.

    Attributes:
        prompt: Prefix / suffix / context
        engine_model_id: Model id used in the proxy URL
        language_id: Editor language id (selects stop sequences)
        count: Number of candidates requested (`n`)
        our_request_id: Client-generated request id sent as X-Request-Id
        ui_kind: Requesting surface
        headers: Additional provider-specific headers
        repo_nwo: owner/name of the repository, if known
        request_log_probs: Ask for logprobs even when disabled by config
        post_options: Overrides applied last
        extra: Provider-specific `extra` bag
    """

    model_config = ConfigDict(frozen=True)

    prompt: Prompt
    engine_model_id: str
    language_id: str = ""
    count: int = Field(default=1, ge=1)
    our_request_id: str
    ui_kind: CopilotUiKind = CopilotUiKind.GHOST_TEXT
    headers: dict[str, str] = Field(default_factory=dict)
    repo_nwo: Optional[str] = None
    request_log_probs: bool = False
    post_options: Optional[PostOptions] = None
    extra: CompletionRequestExtra = Field(default_factory=CompletionRequestExtra)


# =============================================================================
# Sampling defaults
# =============================================================================


_STOPS_FOR_LANGUAGE: dict[str, list[str]] = {
    "markdown": ["\n\n\n"],
    "python": ["\ndef ", "\nclass ", "\nif ", "\n\n#"],
}
_DEFAULT_STOPS = ["\n\n\n", "\n```"]

# logprobs of 2 tokens: the chosen one plus the best alternative
LOGPROBS_ALTERNATIVES = 2


def get_temperature_for_samples(num_shots: int) -> float:
    """Temperature by candidate count: 1=0.0, <10=0.2, <20=0.4, >=20=0.8."""
    if num_shots <= 1:
        return 0.0
    if num_shots < 10:
        return 0.2
    if num_shots < 20:
        return 0.4
    return 0.8


def get_stops(language_id: Optional[str] = None) -> list[str]:
    """Stop sequences for a language id."""
    return list(_STOPS_FOR_LANGUAGE.get(language_id or "", _DEFAULT_STOPS))


def get_top_p() -> float:
    return 1.0


def build_request_body(
    request: CompletionRequest,
    max_tokens: int,
    disable_logprobs: bool = False,
) -> dict[str, Any]:
    """
    Build the JSON body posted to the completions endpoint.

    Args:
        request: The completion request
        max_tokens: Default max_tokens
        disable_logprobs: Skip logprobs unless the request asks for them

    Returns:
        Request body dict; `stream` is always True.
    """
    extra = request.extra.model_dump(exclude_none=True)
    body: dict[str, Any] = {
        "prompt": request.prompt.prefix,
        "suffix": request.prompt.suffix,
        "max_tokens": max_tokens,
        "temperature": get_temperature_for_samples(request.count),
        "top_p": get_top_p(),
        "n": request.count,
        "stop": get_stops(request.language_id),
        "stream": True,
        "extra": extra,
    }

    if request.request_log_probs or not disable_logprobs:
        body["logprobs"] = LOGPROBS_ALTERNATIVES

    if request.repo_nwo is not None:
        body["nwo"] = request.repo_nwo

    if request.post_options is not None:
        body.update(request.post_options.model_dump(exclude_none=True))

    if request.prompt.context:
        extra["context"] = list(request.prompt.context)

    return body
