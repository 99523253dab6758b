"""
Tool-call and function-call mergers.

Both arrive as fragments across chunks: the name (and for tool calls the id)
once, the JSON arguments as pieces of a string that must be concatenated.
"""

from typing import Optional

from completions_fetch.models.responses import FunctionCall, ToolCall
from completions_fetch.models.stream import FunctionCallJSON, ToolCallJSON


class StreamingToolCall:
    """One tool call being assembled."""

    def __init__(self) -> None:
        self.id: Optional[str] = None
        self.name: Optional[str] = None
        self.arguments: list[str] = []

    def update(self, tool_call: ToolCallJSON) -> None:
        if tool_call.id:
            self.id = tool_call.id
        if tool_call.function.name:
            self.name = tool_call.function.name
        self.arguments.append(tool_call.function.arguments)

    def freeze(self) -> ToolCall:
        return ToolCall(id=self.id, name=self.name, arguments="".join(self.arguments))


class StreamingToolCalls:
    """
    Ordered tool calls of a choice.

    A fragment starts a new call when there is no current call, or when it
    carries an id different from the current call's id. Fragments without an
    id continue the current call.
    """

    def __init__(self) -> None:
        self._tool_calls: list[StreamingToolCall] = []

    def update(self, tool_calls: list[ToolCallJSON]) -> None:
        for tool_call in tool_calls:
            current = self._tool_calls[-1] if self._tool_calls else None
            if current is None or (tool_call.id and current.id != tool_call.id):
                current = StreamingToolCall()
                self._tool_calls.append(current)
            current.update(tool_call)

    def freeze(self) -> list[ToolCall]:
        return [tool_call.freeze() for tool_call in self._tool_calls]


class StreamingFunctionCall:
    """Legacy single function call; `name` stays None until a fragment names it."""

    def __init__(self) -> None:
        self.name: Optional[str] = None
        self.arguments: list[str] = []
        self._started = False

    def update(self, function_call: FunctionCallJSON) -> None:
        self._started = True
        if function_call.name:
            self.name = function_call.name
        self.arguments.append(function_call.arguments)

    def freeze(self) -> Optional[FunctionCall]:
        if not self._started:
            return None
        return FunctionCall(name=self.name, arguments="".join(self.arguments))
