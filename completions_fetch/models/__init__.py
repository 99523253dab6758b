"""
Models package.

- stream: wire payloads of the completions event stream
- requests: completion request and request body
- responses: finished completions, choices and fetch outcomes
"""

from completions_fetch.models.requests import (
    CompletionRequest,
    CompletionRequestExtra,
    CopilotUiKind,
    PostOptions,
    Prompt,
    build_request_body,
)
from completions_fetch.models.responses import (
    APIChoice,
    APIJsonData,
    CompletionError,
    CompletionResults,
    FinishedCompletion,
    RequestId,
)
from completions_fetch.models.stream import ChoiceJSON, CopilotAnnotation, StreamingResponse

__all__ = [
    # Requests
    "CompletionRequest",
    "CompletionRequestExtra",
    "CopilotUiKind",
    "PostOptions",
    "Prompt",
    "build_request_body",
    # Responses
    "APIChoice",
    "APIJsonData",
    "CompletionError",
    "CompletionResults",
    "FinishedCompletion",
    "RequestId",
    # Stream
    "ChoiceJSON",
    "CopilotAnnotation",
    "StreamingResponse",
]
