"""
Primitives shared by every operation that rebuilds a Conversation value.
"""

from collections.abc import Iterable, Sequence

from msgspec.structs import replace

from convo.models import Conversation, Message


def get_ordered_messages(conversation: Conversation) -> list[Message]:
    """
    Messages in `ids` order. Ids without a message entry are skipped.
    """
    return [conversation.messages[id] for id in conversation.ids if id in conversation.messages]


def renumber(messages: Iterable[Message]) -> list[Message]:
    """
    Assigns contiguous positions 0..n-1, reusing messages whose position already matches.
    """
    return [m if m.position == i else replace(m, position=i) for i, m in enumerate(messages)]


def with_messages(conversation: Conversation, messages: Sequence[Message], updated_at: str) -> Conversation:
    """
    Returns a new conversation holding exactly `messages`, in the given order.

    Callers must pass messages whose positions are already contiguous.
    """
    return replace(
        conversation,
        ids=tuple(m.id for m in messages),
        messages={m.id: m for m in messages},
        updated_at=updated_at,
    )


def with_replaced_message(conversation: Conversation, message: Message, updated_at: str) -> Conversation:
    """
    Swaps a single message for a new value with the same id and position.
    """
    return replace(
        conversation,
        messages={**conversation.messages, message.id: message},
        updated_at=updated_at,
    )
