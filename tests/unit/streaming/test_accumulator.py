"""
Tests for per-choice accumulation and the fragment mergers.

This module tests:
- StreamCopilotAnnotations: idempotent merge by (namespace, id)
- StreamingToolCalls / StreamingFunctionCall: fragment reassembly
- ChoiceAccumulator: text, logprobs and snapshot
- ChunkStats
"""

from completions_fetch.models.stream import ChoiceJSON, FunctionCallJSON, ToolCallJSON
from completions_fetch.streaming.accumulator import ChoiceAccumulator, ChunkStats
from completions_fetch.streaming.annotations import StreamCopilotAnnotations
from completions_fetch.streaming.tool_calls import StreamingFunctionCall, StreamingToolCalls


# =============================================================================
# Annotations
# =============================================================================


class TestStreamCopilotAnnotations:
    """Tests for the annotation table."""

    def test_same_id_replaces_in_place(self) -> None:
        annotations = StreamCopilotAnnotations()
        annotations.update({"code_references": [{"id": 0, "start_offset": 0, "stop_offset": 1}]})
        annotations.update({"code_references": [{"id": 0, "start_offset": 0, "stop_offset": 2}]})

        references = annotations.for_namespace("code_references")
        assert len(references) == 1
        assert references[0].stop_offset == 2

    def test_applying_same_update_twice_is_idempotent(self) -> None:
        update = {"ip_code_citations": [{"id": 5, "start_offset": 3, "stop_offset": 9, "details": {"x": 1}}]}
        annotations = StreamCopilotAnnotations()
        annotations.update(update)
        once = annotations.snapshot()
        annotations.update(update)

        assert annotations.snapshot() == once

    def test_new_id_appends(self) -> None:
        annotations = StreamCopilotAnnotations()
        annotations.update({"code_references": [{"id": 0}, {"id": 1}]})
        annotations.update({"code_references": [{"id": 0, "stop_offset": 4}]})

        assert [a.id for a in annotations.for_namespace("code_references")] == [0, 1]
        assert annotations.for_namespace("code_references")[0].stop_offset == 4

    def test_namespaces_are_independent(self) -> None:
        annotations = StreamCopilotAnnotations()
        annotations.update({"a": [{"id": 0}], "b": [{"id": 0, "stop_offset": 7}]})

        assert annotations.for_namespace("a")[0].stop_offset == 0
        assert annotations.for_namespace("b")[0].stop_offset == 7
        assert annotations.for_namespace("missing") == []

    def test_snapshot_is_not_affected_by_later_updates(self) -> None:
        annotations = StreamCopilotAnnotations()
        annotations.update({"a": [{"id": 0}]})
        snapshot = annotations.snapshot()
        annotations.update({"a": [{"id": 1}]})

        assert len(snapshot["a"]) == 1


# =============================================================================
# Tool calls / function call
# =============================================================================


class TestStreamingToolCalls:
    """Tests for tool-call reassembly."""

    def test_arguments_are_concatenated(self) -> None:
        tool_calls = StreamingToolCalls()
        tool_calls.update([ToolCallJSON(id="1", function=FunctionCallJSON(name="f", arguments='{"a"'))])
        tool_calls.update([ToolCallJSON(function=FunctionCallJSON(arguments=": 1}"))])

        frozen = tool_calls.freeze()
        assert len(frozen) == 1
        assert frozen[0].name == "f"
        assert frozen[0].arguments == '{"a": 1}'

    def test_different_id_starts_new_call(self) -> None:
        tool_calls = StreamingToolCalls()
        tool_calls.update([
            ToolCallJSON(id="1", function=FunctionCallJSON(name="f", arguments="x")),
            ToolCallJSON(id="2", function=FunctionCallJSON(name="g", arguments="y")),
        ])

        assert [(c.id, c.name, c.arguments) for c in tool_calls.freeze()] == [("1", "f", "x"), ("2", "g", "y")]

    def test_same_id_continues_call(self) -> None:
        tool_calls = StreamingToolCalls()
        tool_calls.update([ToolCallJSON(id="1", function=FunctionCallJSON(name="f", arguments="a"))])
        tool_calls.update([ToolCallJSON(id="1", function=FunctionCallJSON(name="renamed", arguments="b"))])

        frozen = tool_calls.freeze()
        assert len(frozen) == 1
        assert frozen[0].name == "renamed"
        assert frozen[0].arguments == "ab"

    def test_fragment_without_current_call_starts_one(self) -> None:
        tool_calls = StreamingToolCalls()
        tool_calls.update([ToolCallJSON(function=FunctionCallJSON(arguments="{}"))])

        assert len(tool_calls.freeze()) == 1
        assert tool_calls.freeze()[0].id is None


class TestStreamingFunctionCall:
    """Tests for the legacy function-call merger."""

    def test_never_started_freezes_to_none(self) -> None:
        assert StreamingFunctionCall().freeze() is None

    def test_name_overwrites_and_arguments_append(self) -> None:
        function_call = StreamingFunctionCall()
        function_call.update(FunctionCallJSON(name="f", arguments="{"))
        function_call.update(FunctionCallJSON(arguments="}"))

        frozen = function_call.freeze()
        assert frozen is not None
        assert frozen.name == "f"
        assert frozen.arguments == "{}"


# =============================================================================
# ChoiceAccumulator
# =============================================================================


class TestChoiceAccumulator:
    """Tests for ChoiceAccumulator."""

    def test_text_and_delta_content_accumulate(self) -> None:
        accumulator = ChoiceAccumulator()
        accumulator.append(ChoiceJSON.model_validate({"text": "a"}))
        accumulator.append(ChoiceJSON.model_validate({"delta": {"content": "b"}}))

        assert accumulator.joined_text() == "ab"

    def test_function_role_content_is_not_text(self) -> None:
        accumulator = ChoiceAccumulator()
        accumulator.append(ChoiceJSON.model_validate({"delta": {"role": "function", "content": "{...}"}}))
        accumulator.append(ChoiceJSON.model_validate({"delta": {"role": "assistant", "content": "hi"}}))

        assert accumulator.joined_text() == "hi"

    def test_snapshot_defaults(self) -> None:
        accumulator = ChoiceAccumulator()
        accumulator.append(ChoiceJSON.model_validate({"text": "x"}))

        data = accumulator.to_api_json_data()
        assert data.text == "x"
        assert data.tokens == ["x"]
        assert data.finish_reason == "stop"
        assert data.logprobs is None
        assert data.function_call is None
        assert data.tool_calls == []

    def test_finish_reason_recorded(self) -> None:
        accumulator = ChoiceAccumulator()
        accumulator.append(ChoiceJSON.model_validate({"text": "x", "finish_reason": "length"}))

        assert accumulator.finish_reason == "length"
        assert accumulator.to_api_json_data().finish_reason == "length"

    def test_choice_level_annotations_merged(self) -> None:
        accumulator = ChoiceAccumulator()
        accumulator.append(ChoiceJSON.model_validate({
            "text": "x",
            "copilot_annotations": {"code_references": [{"id": 3, "stop_offset": 1}]},
        }))

        assert accumulator.copilot_annotations.for_namespace("code_references")[0].id == 3


class TestChunkStats:
    """Tests for ChunkStats."""

    def test_tracks_seen_and_yielded(self) -> None:
        stats = ChunkStats()
        stats.add(0)
        stats.add(0)
        stats.mark_yielded(0)
        stats.add(0)
        stats.add(1)

        assert str(stats) == "0: 2 -> 3, 1: -1 -> 1"
