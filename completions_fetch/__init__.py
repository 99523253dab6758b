"""Completions Fetch - streaming code-completion fetch engine.

Sends a completion request to an OpenAI-compatible proxy and decodes its
event stream into finished completion choices.
"""

from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.models.requests import CompletionRequest, CopilotUiKind, Prompt
from completions_fetch.models.responses import APIChoice, CompletionError, CompletionResults
from completions_fetch.services.fetcher import CompletionFetcher, LiveCompletionFetcher
from completions_fetch.streaming.oracle import RequestDelta, SolutionDecision

__version__ = "0.1.0"

__all__ = [
    "APIChoice",
    "CancellationToken",
    "CompletionError",
    "CompletionFetcher",
    "CompletionRequest",
    "CompletionResults",
    "CopilotUiKind",
    "LiveCompletionFetcher",
    "Prompt",
    "RequestDelta",
    "SolutionDecision",
]
