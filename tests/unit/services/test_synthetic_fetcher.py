"""Tests for the synthetic completion fetcher."""

import pytest

from completions_fetch.core.cancellation import CancellationToken
from completions_fetch.core.exceptions import TokenError
from completions_fetch.auth.tokens import StaticTokenManager
from completions_fetch.models.requests import CompletionRequest, PostOptions, Prompt
from completions_fetch.models.responses import CompletionError
from completions_fetch.services.fake import (
    CANCELED_DURING_TEST,
    SyntheticCompletionFetcher,
    apply_stops,
    fake_api_choice,
)


async def texts(result) -> list[str]:
    return [choice.completion_text async for choice in result.choices]


class TestApplyStops:
    """Tests for apply_stops."""

    def test_cuts_at_earliest_stop(self) -> None:
        assert apply_stops("a\n\nb\ndef c", ["\ndef ", "\n\n"]) == "a"

    def test_no_stops(self) -> None:
        assert apply_stops("a\n\nb", None) == "a\n\nb"
        assert apply_stops("a", ["x"]) == "a"


class TestFakeApiChoice:
    """Tests for fake_api_choice."""

    def test_tokens_are_lines(self) -> None:
        choice = fake_api_choice("req", 3, "a\nb\n")

        assert choice.tokens == ["a\n", "b\n"]
        assert choice.choice_index == 3
        assert choice.request_id.header_request_id == "req"
        assert choice.mean_log_prob == 0.5


class TestSyntheticCompletionFetcher:
    """Tests for SyntheticCompletionFetcher."""

    @pytest.mark.asyncio
    async def test_first_call_returns_completions(self, completion_request) -> None:
        fetcher = SyntheticCompletionFetcher(["return a\n", "return b\n"])

        result = await fetcher.fetch_and_stream_completions(completion_request)

        assert result.type == "success"
        assert await texts(result) == ["return a\n", "return b\n"]
        assert result.get_processing_time() == 0

    @pytest.mark.asyncio
    async def test_later_calls_return_nothing(self, completion_request) -> None:
        fetcher = SyntheticCompletionFetcher(["return a\n"])
        await texts(await fetcher.fetch_and_stream_completions(completion_request))

        result = await fetcher.fetch_and_stream_completions(completion_request)

        assert await texts(result) == []

    @pytest.mark.asyncio
    async def test_stops_from_post_options(self) -> None:
        request = CompletionRequest(
            prompt=Prompt(prefix="p"),
            engine_model_id="synthetic",
            our_request_id="r",
            post_options=PostOptions(stop=["\n"]),
        )
        fetcher = SyntheticCompletionFetcher(["one\ntwo\n"])

        assert await texts(await fetcher.fetch_and_stream_completions(request)) == ["one"]

    @pytest.mark.asyncio
    async def test_oracle_truncates(self, completion_request) -> None:
        fetcher = SyntheticCompletionFetcher(["first\nsecond\n"])

        result = await fetcher.fetch_and_stream_completions(completion_request, lambda text, delta: 6)
        choices = [choice async for choice in result.choices]

        assert choices[0].completion_text == "first\n"
        assert choices[0].block_finished is True

    @pytest.mark.asyncio
    async def test_cancelled(self, completion_request) -> None:
        cancellation = CancellationToken()
        cancellation.cancel()

        result = await SyntheticCompletionFetcher(["x"]).fetch_and_stream_completions(
            completion_request, cancellation=cancellation
        )

        assert result == CompletionError.canceled(CANCELED_DURING_TEST)

    @pytest.mark.asyncio
    async def test_token_failure_propagates(self, completion_request) -> None:
        def factory():
            raise RuntimeError("signed out")

        fetcher = SyntheticCompletionFetcher(["x"], StaticTokenManager(factory))

        with pytest.raises(TokenError):
            await fetcher.fetch_and_stream_completions(completion_request)
