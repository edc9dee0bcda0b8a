from collections.abc import Mapping
from typing import Any

from msgspec.structs import replace

from convo.content import content_text
from convo.environment import Environment, resolve_environment
from convo.exceptions import InvalidInputError
from convo.models import Conversation, Message, Role
from convo.serialization import json_safety_error

from .append import next_message_id
from .integrity import ensure_integrity
from .store import get_ordered_messages, renumber, with_messages, with_replaced_message


def has_system_message(conversation: Conversation) -> bool:
    return any(m.role == Role.SYSTEM for m in conversation.messages.values())


def get_first_system_message(conversation: Conversation) -> Message | None:
    return next((m for m in get_ordered_messages(conversation) if m.role == Role.SYSTEM), None)


def get_system_messages(conversation: Conversation) -> list[Message]:
    return [m for m in get_ordered_messages(conversation) if m.role == Role.SYSTEM]


def _checked_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    result = dict(metadata)
    if error := json_safety_error(result):
        raise InvalidInputError(f"metadata is not JSON-safe: {error}", {"field": "metadata"})
    return result


def prepend_system_message(
    conversation: Conversation,
    content: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Inserts a system message at position 0 and shifts every other message down by one.
    """
    env = resolve_environment(environment)
    checked = _checked_metadata(metadata) or {}
    now = env.now()

    system = Message(
        id=next_message_id(env, conversation.messages, set()),
        role=Role.SYSTEM,
        content=content,
        position=0,
        created_at=now,
        metadata=checked,
    )
    messages = renumber([system, *get_ordered_messages(conversation)])
    return ensure_integrity(with_messages(conversation, messages, now))


def replace_system_message(
    conversation: Conversation,
    content: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Replaces the content of the first system message, or prepends one if none exists.

    The original metadata is kept unless new metadata is given.
    """
    env = resolve_environment(environment)
    original = get_first_system_message(conversation)
    if original is None:
        return prepend_system_message(conversation, content, metadata, environment=env)

    checked = _checked_metadata(metadata)
    replaced = replace(
        original,
        content=content,
        metadata=checked if checked is not None else dict(original.metadata),
        tool_call=None,
        tool_result=None,
        token_usage=None,
    )
    return ensure_integrity(with_replaced_message(conversation, replaced, env.now()))


def collapse_system_messages(
    conversation: Conversation,
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Merges all system messages into the slot of the first one.

    Texts are deduplicated by exact equality of their flattened text (text
    parts concatenated, other parts dropped) and joined with newlines; empty
    texts are skipped. Returns the input unchanged with 0 or 1 system messages.
    """
    system_messages = get_system_messages(conversation)
    if len(system_messages) <= 1:
        return conversation

    env = resolve_environment(environment)

    seen: set[str] = set()
    parts: list[str] = []
    for message in system_messages:
        text = content_text(message.content, joiner="")
        if not text or text in seen:
            continue
        seen.add(text)
        parts.append(text)

    first = system_messages[0]
    collapsed = replace(first, content="\n".join(parts), tool_call=None, tool_result=None, token_usage=None)
    removed = {m.id for m in system_messages[1:]}

    messages = renumber(
        collapsed if m.id == first.id else m for m in get_ordered_messages(conversation) if m.id not in removed
    )
    return ensure_integrity(with_messages(conversation, messages, env.now()))
