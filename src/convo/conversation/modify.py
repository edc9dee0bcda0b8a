from msgspec.structs import replace

from convo.environment import Environment, resolve_environment
from convo.exceptions import InvalidPositionError
from convo.models import Conversation, Role

from .integrity import ensure_integrity
from .store import with_replaced_message

DEFAULT_REDACTED_PLACEHOLDER = "[REDACTED]"


def redact_message_at_position(
    conversation: Conversation,
    position: int,
    *,
    placeholder: str = DEFAULT_REDACTED_PLACEHOLDER,
    redact_tool_arguments: bool = True,
    redact_tool_results: bool = True,
    clear_tool_metadata: bool = False,
    environment: Environment | None = None,
) -> Conversation:
    """
    Replaces the content of the message at `position` with a placeholder.

    Token usage is cleared. Tool call arguments and tool result content are
    replaced by the placeholder unless `redact_tool_arguments` or
    `redact_tool_results` is turned off. Call and result identifiers are kept so
    the tool linkage stays intact; `clear_tool_metadata` drops them as well,
    which fails integrity if another message still references the call.
    Only the target message changes.
    """
    if not 0 <= position < len(conversation.ids):
        raise InvalidPositionError(len(conversation.ids) - 1, position)

    original = conversation.messages.get(conversation.ids[position])
    if original is None:
        raise InvalidPositionError(len(conversation.ids) - 1, position)

    tool_call = original.tool_call
    tool_result = original.tool_result
    if clear_tool_metadata:
        tool_call = None
        tool_result = None
    else:
        if redact_tool_arguments and original.role == Role.TOOL_USE and tool_call is not None:
            tool_call = replace(tool_call, arguments=placeholder)
        if redact_tool_results and original.role == Role.TOOL_RESULT and tool_result is not None:
            tool_result = replace(tool_result, content=placeholder)

    redacted = replace(
        original,
        content=placeholder,
        tool_call=tool_call,
        tool_result=tool_result,
        token_usage=None,
    )

    env = resolve_environment(environment)
    return ensure_integrity(with_replaced_message(conversation, redacted, env.now()))
