from collections.abc import Iterable, Mapping

from convo.exceptions import InvalidToolReferenceError
from convo.models import Message, Role, ToolCall

# toolCall.id -> tool name
type ToolUseIndex = Mapping[str, str]


def build_tool_use_index(messages: Iterable[Message]) -> dict[str, str]:
    return {m.tool_call.id: m.tool_call.name for m in messages if m.role == Role.TOOL_USE and m.tool_call is not None}


def register_tool_use(index: ToolUseIndex, tool_call: ToolCall) -> dict[str, str]:
    """
    Returns a new index with the tool call added; the input index is left untouched.
    """
    return {**index, tool_call.id: tool_call.name}


def assert_tool_reference(index: ToolUseIndex, call_id: str) -> None:
    if call_id not in index:
        raise InvalidToolReferenceError(call_id)
