import logging
from collections.abc import Mapping
from typing import Any

from msgspec.structs import replace

from convo.content import normalize_content
from convo.environment import Environment, resolve_environment
from convo.exceptions import DuplicateIdError, IntegrityError, InvalidInputError
from convo.models import (
    Content,
    Conversation,
    Message,
    MessageInput,
    MessageLifecycle,
    Role,
    TokenUsage,
    ToolCall,
    ToolOutcome,
    ToolResult,
)
from convo.serialization import json_safety_error

from .integrity import ensure_integrity
from .store import get_ordered_messages
from .tool_tracking import assert_tool_reference, build_tool_use_index, register_tool_use

logger = logging.getLogger(__name__)


def validate_message_input(message: MessageInput) -> None:
    """
    Rejects structurally malformed inputs before they become messages.
    """
    try:
        role = Role(message.role)
    except ValueError as e:
        raise InvalidInputError(f"unknown role: {message.role!r}", {"role": message.role}) from e
    context = {"role": role.value}

    match role:
        case Role.TOOL_USE if message.tool_call is None:
            raise InvalidInputError("tool-use message requires a toolCall", context)
        case Role.TOOL_RESULT if message.tool_result is None:
            raise InvalidInputError("tool-result message requires a toolResult", context)
        case _:
            pass

    if message.tool_call is not None and role != Role.TOOL_USE:
        raise InvalidInputError("toolCall is only allowed on tool-use messages", context)
    if message.tool_result is not None and role != Role.TOOL_RESULT:
        raise InvalidInputError("toolResult is only allowed on tool-result messages", context)
    if message.goal_completed is not None and role != Role.ASSISTANT:
        raise InvalidInputError("goalCompleted is only allowed on assistant messages", context)

    payloads: list[tuple[str, object]] = [("metadata", message.metadata)]
    if message.tool_call is not None:
        payloads.append(("toolCall.arguments", message.tool_call.arguments))
    if message.tool_result is not None:
        payloads.append(("toolResult.content", message.tool_result.content))
    for field_name, value in payloads:
        if error := json_safety_error(value):
            raise InvalidInputError(f"{field_name} is not JSON-safe: {error}", {**context, "field": field_name})


def _role_signature(message: MessageInput) -> tuple[str, str | None, str | None]:
    return (
        message.role,
        message.tool_call.id if message.tool_call else None,
        message.tool_result.call_id if message.tool_result else None,
    )


def apply_plugins(message: MessageInput, env: Environment) -> MessageInput:
    """
    Runs the environment's plugin pipeline over an input.

    Plugins may rewrite content and metadata but not the role-defining structure.
    """
    if not env.plugins:
        return message
    processed = env.apply_plugins(message)
    if _role_signature(processed) != _role_signature(message):
        raise InvalidInputError(
            "plugin changed role-defining structure of a message input",
            {"before": list(_role_signature(message)), "after": list(_role_signature(processed))},
        )
    return processed


def message_from_input(
    message: MessageInput,
    *,
    id: str,
    position: int,
    created_at: str,
    lifecycle: MessageLifecycle = MessageLifecycle.FINAL,
) -> Message:
    role = Role(message.role)
    return Message(
        id=id,
        role=role,
        content=normalize_content(message.content),
        position=position,
        created_at=created_at,
        metadata=dict(message.metadata),
        hidden=message.hidden,
        tool_call=message.tool_call,
        tool_result=message.tool_result,
        token_usage=message.token_usage,
        goal_completed=message.goal_completed if role == Role.ASSISTANT else None,
        lifecycle=lifecycle,
    )


def next_message_id(env: Environment, taken: Mapping[str, object], batch: set[str]) -> str:
    id = env.random_id()
    if id in taken or id in batch:
        raise DuplicateIdError(id)
    return id


def append_messages(
    conversation: Conversation,
    *inputs: MessageInput,
    environment: Environment | None = None,
) -> Conversation:
    """
    Appends one or more messages to a conversation.

    Every input passes through the plugin pipeline first. A running tool-use
    index, seeded from the conversation, is threaded through the batch so a
    tool-result may reference a tool-use appended earlier in the same call.
    Any failure aborts the whole batch and the input conversation is untouched.
    """
    env = resolve_environment(environment)
    now = env.now()
    start_position = len(conversation.ids)
    tool_uses = build_tool_use_index(get_ordered_messages(conversation))

    new_messages: list[Message] = []
    batch_ids: set[str] = set()
    for offset, raw in enumerate(inputs):
        processed = apply_plugins(raw, env)
        validate_message_input(processed)

        if processed.tool_result is not None:
            assert_tool_reference(tool_uses, processed.tool_result.call_id)

        if processed.tool_call is not None:
            call_id = processed.tool_call.id
            if call_id in tool_uses:
                raise IntegrityError(
                    "duplicate toolCall.id in conversation",
                    {"toolCallId": call_id, "position": start_position + offset},
                )
            tool_uses = register_tool_use(tool_uses, processed.tool_call)

        id = next_message_id(env, conversation.messages, batch_ids)
        batch_ids.add(id)
        new_messages.append(message_from_input(processed, id=id, position=start_position + offset, created_at=now))

    if not new_messages:
        return conversation

    logger.debug("Appending %d message(s) to conversation %s", len(new_messages), conversation.id)
    next_conversation = replace(
        conversation,
        ids=(*conversation.ids, *(m.id for m in new_messages)),
        messages={**conversation.messages, **{m.id: m for m in new_messages}},
        updated_at=now,
    )
    return ensure_integrity(next_conversation)


def _simple_append(
    conversation: Conversation,
    role: Role,
    content: Content,
    metadata: Mapping[str, Any] | None,
    environment: Environment | None,
) -> Conversation:
    message = MessageInput(role=role, content=content, metadata=dict(metadata or {}))
    return append_messages(conversation, message, environment=environment)


def append_user_message(
    conversation: Conversation,
    content: Content,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> Conversation:
    return _simple_append(conversation, Role.USER, content, metadata, environment)


def append_assistant_message(
    conversation: Conversation,
    content: Content,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> Conversation:
    return _simple_append(conversation, Role.ASSISTANT, content, metadata, environment)


def append_system_message(
    conversation: Conversation,
    content: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> Conversation:
    return _simple_append(conversation, Role.SYSTEM, content, metadata, environment)


def append_tool_use(
    conversation: Conversation,
    tool_name: str,
    arguments: Any = None,
    *,
    call_id: str | None = None,
    content: Content = "",
    metadata: Mapping[str, Any] | None = None,
    hidden: bool = False,
    token_usage: TokenUsage | None = None,
    environment: Environment | None = None,
) -> Conversation:
    """
    Appends a tool-use message. The call id is generated by the environment when not given.
    """
    env = resolve_environment(environment)
    tool_call = ToolCall(id=call_id if call_id is not None else env.random_id(), name=tool_name, arguments=arguments)
    message = MessageInput(
        role=Role.TOOL_USE,
        content=content,
        metadata=dict(metadata or {}),
        hidden=hidden,
        tool_call=tool_call,
        token_usage=token_usage,
    )
    return append_messages(conversation, message, environment=env)


def append_tool_result(
    conversation: Conversation,
    call_id: str,
    result: Any = None,
    *,
    outcome: ToolOutcome = ToolOutcome.SUCCESS,
    content: Content = "",
    metadata: Mapping[str, Any] | None = None,
    hidden: bool = False,
    token_usage: TokenUsage | None = None,
    environment: Environment | None = None,
) -> Conversation:
    message = MessageInput(
        role=Role.TOOL_RESULT,
        content=content,
        metadata=dict(metadata or {}),
        hidden=hidden,
        tool_result=ToolResult(call_id=call_id, outcome=ToolOutcome(outcome), content=result),
        token_usage=token_usage,
    )
    return append_messages(conversation, message, environment=environment)
