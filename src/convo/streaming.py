"""
Lifecycle of messages built incrementally from a streamed response.

A streaming message is appended with empty content and `lifecycle=streaming`,
has its content replaced on every update, and ends either finalized or
cancelled (removed). Events for unknown or already finished messages are
ignored, since network events may arrive late or twice.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from msgspec.structs import replace

from convo.content import normalize_content
from convo.conversation.append import next_message_id
from convo.conversation.integrity import ensure_integrity
from convo.conversation.store import get_ordered_messages, renumber, with_messages, with_replaced_message
from convo.environment import Environment, resolve_environment
from convo.exceptions import InvalidInputError
from convo.models import ContentPart, Conversation, Message, MessageLifecycle, Role, TokenUsage
from convo.serialization import json_safety_error

logger = logging.getLogger(__name__)

_STREAMING_ROLES = (Role.USER, Role.ASSISTANT)


def is_streaming_message(message: Message) -> bool:
    return message.lifecycle == MessageLifecycle.STREAMING


def get_streaming_message(conversation: Conversation) -> Message | None:
    """
    The first streaming message in conversation order, if any.
    """
    return next((m for m in get_ordered_messages(conversation) if is_streaming_message(m)), None)


def get_streaming_messages(conversation: Conversation) -> list[Message]:
    return [m for m in get_ordered_messages(conversation) if is_streaming_message(m)]


def _checked_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any]:
    checked = dict(metadata or {})
    if error := json_safety_error(checked):
        raise InvalidInputError(f"metadata is not JSON-safe: {error}", {"field": "metadata"})
    return checked


def _streaming_target(conversation: Conversation, message_id: str, event: str) -> Message | None:
    message = conversation.messages.get(message_id)
    if message is None:
        logger.warning("Ignoring %s for unknown message %s", event, message_id)
        return None
    if not is_streaming_message(message):
        logger.debug("Ignoring %s for message %s which is not streaming", event, message_id)
        return None
    return message


def append_streaming_message(
    conversation: Conversation,
    role: Role | str = Role.ASSISTANT,
    metadata: Mapping[str, Any] | None = None,
    *,
    environment: Environment | None = None,
) -> tuple[Conversation, str]:
    """
    Appends an empty streaming placeholder and returns the new conversation with its message id.
    """
    streaming_role = next((r for r in _STREAMING_ROLES if r == role), None)
    if streaming_role is None:
        raise InvalidInputError("streaming messages must be user or assistant messages", {"role": role})

    env = resolve_environment(environment)
    now = env.now()
    message = Message(
        id=next_message_id(env, conversation.messages, set()),
        role=streaming_role,
        content="",
        position=len(conversation.ids),
        created_at=now,
        metadata=_checked_metadata(metadata),
        lifecycle=MessageLifecycle.STREAMING,
    )
    logger.debug("Started streaming message %s in conversation %s", message.id, conversation.id)
    next_conversation = replace(
        conversation,
        ids=(*conversation.ids, message.id),
        messages={**conversation.messages, message.id: message},
        updated_at=now,
    )
    return ensure_integrity(next_conversation), message.id


def update_streaming_message(
    conversation: Conversation,
    message_id: str,
    content: str | ContentPart | Iterable[ContentPart],
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Replaces the content of a streaming message with the accumulated text so far.
    """
    message = _streaming_target(conversation, message_id, "update")
    if message is None:
        return conversation

    env = resolve_environment(environment)
    updated = replace(message, content=normalize_content(content))
    return with_replaced_message(conversation, updated, env.now())


def finalize_streaming_message(
    conversation: Conversation,
    message_id: str,
    *,
    token_usage: TokenUsage | None = None,
    metadata: Mapping[str, Any] | None = None,
    environment: Environment | None = None,
) -> Conversation:
    """
    Marks a streaming message final, merging in extra metadata and recording token usage.
    """
    message = _streaming_target(conversation, message_id, "finalize")
    if message is None:
        return conversation

    env = resolve_environment(environment)
    finalized = replace(
        message,
        lifecycle=MessageLifecycle.FINAL,
        metadata={**message.metadata, **_checked_metadata(metadata)},
        token_usage=token_usage if token_usage is not None else message.token_usage,
    )
    logger.debug("Finalized streaming message %s", message_id)
    return with_replaced_message(conversation, finalized, env.now())


def cancel_streaming_message(
    conversation: Conversation,
    message_id: str,
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Removes a streaming message; later messages move up one position.
    """
    message = _streaming_target(conversation, message_id, "cancel")
    if message is None:
        return conversation

    env = resolve_environment(environment)
    remaining = renumber(m for m in get_ordered_messages(conversation) if m.id != message_id)
    logger.debug("Cancelled streaming message %s", message_id)
    return ensure_integrity(with_messages(conversation, remaining, env.now()))
