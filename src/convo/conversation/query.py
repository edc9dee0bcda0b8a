from collections import Counter
from collections.abc import Callable

from convo.content import message_has_images
from convo.models import Conversation, ConversationStatistics, Message, Role, ToolCall, ToolInteraction, ToolResult

from .store import get_ordered_messages


def get_messages(conversation: Conversation, *, include_hidden: bool = False) -> list[Message]:
    """
    Ordered messages, excluding hidden ones unless `include_hidden` is set.
    """
    ordered = get_ordered_messages(conversation)
    return ordered if include_hidden else [m for m in ordered if not m.hidden]


def get_message_at_position(conversation: Conversation, position: int) -> Message | None:
    if not 0 <= position < len(conversation.ids):
        return None
    return conversation.messages.get(conversation.ids[position])


def get_message_by_id(conversation: Conversation, id: str) -> Message | None:
    return conversation.messages.get(id)


def get_message_ids(conversation: Conversation) -> list[str]:
    return list(conversation.ids)


def search_messages(conversation: Conversation, predicate: Callable[[Message], bool]) -> list[Message]:
    return [m for m in get_ordered_messages(conversation) if predicate(m)]


def get_statistics(conversation: Conversation) -> ConversationStatistics:
    ordered = get_ordered_messages(conversation)
    by_role = Counter(Role(m.role).value for m in ordered)
    return ConversationStatistics(
        total=len(ordered),
        by_role=dict(by_role),
        hidden=sum(1 for m in ordered if m.hidden),
        with_images=sum(1 for m in ordered if message_has_images(m)),
    )


def get_pending_tool_calls(conversation: Conversation) -> list[ToolCall]:
    """
    Tool calls that have no tool-result yet, in conversation order.
    """
    ordered = get_ordered_messages(conversation)
    completed = {m.tool_result.call_id for m in ordered if m.role == Role.TOOL_RESULT and m.tool_result is not None}
    return [
        m.tool_call
        for m in ordered
        if m.role == Role.TOOL_USE and m.tool_call is not None and m.tool_call.id not in completed
    ]


def get_tool_interactions(conversation: Conversation) -> list[ToolInteraction]:
    """
    Every tool call paired with its result (if any), in call order.
    """
    ordered = get_ordered_messages(conversation)
    results: dict[str, ToolResult] = {m.tool_result.call_id: m.tool_result for m in ordered if m.tool_result is not None}
    return [ToolInteraction(m.tool_call, results.get(m.tool_call.id)) for m in ordered if m.tool_call is not None]
