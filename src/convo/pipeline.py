"""
Chaining engine operations over one conversation value.

`pipe_conversation` threads a value through plain functions. A
`ConversationDraft` wraps the engine operations as chainable methods over a
current value; `draft_conversation` hands one out for a block and rolls it
back to the starting value if the block raises.
"""

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from functools import reduce
from typing import Any, Self

from convo.context import truncate_from_position, truncate_to_token_limit
from convo.conversation import (
    append_assistant_message,
    append_messages,
    append_system_message,
    append_tool_result,
    append_tool_use,
    append_user_message,
    collapse_system_messages,
    prepend_system_message,
    redact_message_at_position,
    replace_system_message,
)
from convo.environment import Environment
from convo.models import Content, ContentPart, Conversation, MessageInput, Role
from convo.streaming import (
    append_streaming_message,
    cancel_streaming_message,
    finalize_streaming_message,
    update_streaming_message,
)

logger = logging.getLogger(__name__)


def pipe_conversation(conversation: Conversation, *fns: Callable[[Conversation], Conversation]) -> Conversation:
    """
    Applies `fns` left to right, each receiving the previous result.
    """
    return reduce(lambda current, fn: fn(current), fns, conversation)


class ConversationDraft:
    """
    A mutable handle over an immutable conversation.

    Every method applies one engine operation to the current value, replaces
    the value with the result and returns the draft so calls chain. A failing
    operation raises and leaves the value at the last successful step.
    """

    _value: Conversation
    _environment: Environment | None

    def __init__(self, conversation: Conversation, environment: Environment | None = None) -> None:
        self._value = conversation
        self._environment = environment

    @property
    def value(self) -> Conversation:
        return self._value

    def apply(self, operation: Callable[..., Conversation], *args: Any, **kwargs: Any) -> Self:
        """
        Runs `operation(value, *args, environment=..., **kwargs)` and keeps its result.
        """
        self._value = operation(self._value, *args, environment=self._environment, **kwargs)
        return self

    def append_messages(self, *inputs: MessageInput) -> Self:
        return self.apply(append_messages, *inputs)

    def append_user_message(self, content: Content, metadata: Mapping[str, Any] | None = None) -> Self:
        return self.apply(append_user_message, content, metadata)

    def append_assistant_message(self, content: Content, metadata: Mapping[str, Any] | None = None) -> Self:
        return self.apply(append_assistant_message, content, metadata)

    def append_system_message(self, content: str, metadata: Mapping[str, Any] | None = None) -> Self:
        return self.apply(append_system_message, content, metadata)

    def append_tool_use(self, tool_name: str, arguments: Any = None, **options: Any) -> Self:
        return self.apply(append_tool_use, tool_name, arguments, **options)

    def append_tool_result(self, call_id: str, result: Any = None, **options: Any) -> Self:
        return self.apply(append_tool_result, call_id, result, **options)

    def prepend_system_message(self, content: str, metadata: Mapping[str, Any] | None = None) -> Self:
        return self.apply(prepend_system_message, content, metadata)

    def replace_system_message(self, content: str, metadata: Mapping[str, Any] | None = None) -> Self:
        return self.apply(replace_system_message, content, metadata)

    def collapse_system_messages(self) -> Self:
        return self.apply(collapse_system_messages)

    def redact_message_at_position(self, position: int, **options: Any) -> Self:
        return self.apply(redact_message_at_position, position, **options)

    def truncate_from_position(self, position: int, *, preserve_system_messages: bool = True) -> Self:
        return self.apply(truncate_from_position, position, preserve_system_messages=preserve_system_messages)

    def truncate_to_token_limit(self, max_tokens: int, **options: Any) -> Self:
        return self.apply(truncate_to_token_limit, max_tokens, **options)

    def append_streaming_message(
        self, role: Role | str = Role.ASSISTANT, metadata: Mapping[str, Any] | None = None
    ) -> str:
        """
        Starts a streaming message and returns its id for the later update calls.
        """
        self._value, message_id = append_streaming_message(
            self._value, role, metadata, environment=self._environment
        )
        return message_id

    def update_streaming_message(self, message_id: str, content: str | ContentPart | Iterable[ContentPart]) -> Self:
        return self.apply(update_streaming_message, message_id, content)

    def finalize_streaming_message(self, message_id: str, **options: Any) -> Self:
        return self.apply(finalize_streaming_message, message_id, **options)

    def cancel_streaming_message(self, message_id: str) -> Self:
        return self.apply(cancel_streaming_message, message_id)


@contextmanager
def draft_conversation(
    conversation: Conversation, environment: Environment | None = None
) -> Iterator[ConversationDraft]:
    """
    Yields a draft over `conversation`. If the block raises, the draft is reset
    to `conversation` before the error propagates, so no partial edit escapes.
    """
    draft = ConversationDraft(conversation, environment)
    try:
        yield draft
    except BaseException:
        logger.debug("Discarding draft edits to conversation %s", conversation.id)
        draft._value = conversation  # pyright: ignore[reportPrivateUsage]
        raise


def with_conversation(
    conversation: Conversation,
    fn: Callable[[ConversationDraft], object],
    *,
    environment: Environment | None = None,
) -> Conversation:
    """
    Runs `fn` with a draft over `conversation` and returns the final value.
    """
    with draft_conversation(conversation, environment) as draft:
        _ = fn(draft)
    return draft.value
