"""
Per-choice accumulation state.

The decoder keeps one ChoiceAccumulator per choice index while the choice is
open. Every ChoiceJSON delta for that index is appended in arrival order.
"""

from typing import Optional

from completions_fetch.models.responses import APIJsonData, APILogprobs
from completions_fetch.models.stream import ChoiceJSON, CopilotReference
from completions_fetch.streaming.annotations import StreamCopilotAnnotations
from completions_fetch.streaming.tool_calls import StreamingFunctionCall, StreamingToolCalls


class ChoiceAccumulator:
    """
    Gathers together the chunks of a single completion choice.

    Logprob data is kept per chunk and flattened on snapshot.
    """

    def __init__(self) -> None:
        self.text: list[str] = []
        self.tokens: list[list[str]] = []
        self.text_offset: list[list[int]] = []
        self.logprobs: list[list[Optional[float]]] = []
        self.top_logprobs: list[list[Optional[dict[str, float]]]] = []
        self.copilot_annotations = StreamCopilotAnnotations()
        self.tool_calls = StreamingToolCalls()
        self.function_call = StreamingFunctionCall()
        self.copilot_references: list[CopilotReference] = []
        self.finish_reason: Optional[str] = None
        self.yielded = False

    def append(self, choice: ChoiceJSON) -> None:
        """Merge one delta into the accumulated state."""
        if choice.text:
            self.text.append(choice.text)

        delta = choice.delta
        # Role function is not part of the completion text.
        if delta is not None and delta.content and delta.role != "function":
            self.text.append(delta.content)

        if choice.logprobs is not None:
            self.tokens.append(choice.logprobs.tokens or [])
            self.text_offset.append(choice.logprobs.text_offset or [])
            self.logprobs.append(choice.logprobs.token_logprobs or [])
            self.top_logprobs.append(choice.logprobs.top_logprobs or [])

        if choice.copilot_annotations:
            self.copilot_annotations.update(choice.copilot_annotations)
        if delta is not None and delta.copilot_annotations:
            self.copilot_annotations.update(delta.copilot_annotations)

        if delta is not None and delta.tool_calls:
            self.tool_calls.update(delta.tool_calls)
        if delta is not None and delta.function_call is not None:
            self.function_call.update(delta.function_call)

        if choice.finish_reason:
            self.finish_reason = choice.finish_reason

    def joined_text(self) -> str:
        return "".join(self.text)

    def to_api_json_data(self) -> APIJsonData:
        """Immutable snapshot of the accumulated data."""
        logprobs = None
        if self.logprobs:
            logprobs = APILogprobs(
                token_logprobs=[value for chunk in self.logprobs for value in chunk],
                top_logprobs=[value for chunk in self.top_logprobs for value in chunk],
                text_offset=[value for chunk in self.text_offset for value in chunk],
                tokens=[value for chunk in self.tokens for value in chunk],
            )
        return APIJsonData(
            text=self.joined_text(),
            tokens=list(self.text),
            logprobs=logprobs,
            copilot_annotations=self.copilot_annotations.snapshot(),
            finish_reason=self.finish_reason or "stop",
            tool_calls=self.tool_calls.freeze(),
            function_call=self.function_call.freeze(),
        )


class ChoiceStats:
    """Chunks seen for one choice, and how many had been seen when it was yielded."""

    def __init__(self) -> None:
        self.yielded_tokens = -1
        self.seen_tokens = 0

    def increment(self) -> None:
        self.seen_tokens += 1

    def mark_yielded(self) -> None:
        self.yielded_tokens = self.seen_tokens


class ChunkStats:
    """Keeps track of how many chunks of each choice were read and yielded out."""

    def __init__(self) -> None:
        self._choices: dict[int, ChoiceStats] = {}

    def _get(self, choice_index: int) -> ChoiceStats:
        if choice_index not in self._choices:
            self._choices[choice_index] = ChoiceStats()
        return self._choices[choice_index]

    def add(self, choice_index: int) -> None:
        self._get(choice_index).increment()

    def mark_yielded(self, choice_index: int) -> None:
        self._get(choice_index).mark_yielded()

    def __str__(self) -> str:
        return ", ".join(
            f"{index}: {stats.yielded_tokens} -> {stats.seen_tokens}"
            for index, stats in self._choices.items()
        )
