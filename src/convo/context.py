"""
Token-budget aware views of a conversation.
"""

import logging
from collections.abc import Iterable, Sequence

from convo.conversation.integrity import ensure_integrity
from convo.conversation.store import get_ordered_messages, renumber, with_messages
from convo.environment import Environment, TokenEstimator, resolve_environment
from convo.exceptions import InvalidInputError, InvalidPositionError
from convo.models import Conversation, Message, Role

logger = logging.getLogger(__name__)


def estimate_conversation_tokens(
    conversation: Conversation,
    estimate_tokens: TokenEstimator | None = None,
    *,
    environment: Environment | None = None,
) -> int:
    """
    Sums the estimated tokens of all messages, using the environment's estimator unless one is given.
    """
    estimator = estimate_tokens or resolve_environment(environment).estimate_tokens
    return sum(estimator(m) for m in get_ordered_messages(conversation))


def _tool_uses_for_results(ordered: Sequence[Message], results: Iterable[Message]) -> set[str]:
    """
    Message ids of the tool-use messages that the given tool-results reference.
    """
    use_by_call = {m.tool_call.id: m.id for m in ordered if m.role == Role.TOOL_USE and m.tool_call is not None}
    return {
        use_by_call[m.tool_result.call_id]
        for m in results
        if m.tool_result is not None and m.tool_result.call_id in use_by_call
    }


def _select(
    conversation: Conversation,
    ordered: Sequence[Message],
    keep: set[str],
    environment: Environment,
) -> Conversation:
    selected = [m for m in ordered if m.id in keep]
    if len(selected) == len(conversation.ids) and all(m.id == id for m, id in zip(selected, conversation.ids)):
        return conversation
    return ensure_integrity(with_messages(conversation, renumber(selected), environment.now()))


def truncate_to_token_limit(
    conversation: Conversation,
    max_tokens: int,
    *,
    estimate_tokens: TokenEstimator | None = None,
    preserve_system_messages: bool = True,
    preserve_last_n: int = 0,
    environment: Environment | None = None,
) -> Conversation:
    """
    Drops the oldest messages until the conversation fits in `max_tokens`.

    System messages (when preserved) and the last `preserve_last_n` non-system
    messages are never dropped, even if they alone exceed the budget. The rest
    is kept newest-first while it fits; the scan stops at the first message
    that does not fit. Survivors keep their relative order and are renumbered.
    A conversation that already fits is returned as is.
    """
    if preserve_last_n < 0:
        raise InvalidInputError("preserve_last_n must not be negative", {"preserveLastN": preserve_last_n})

    env = resolve_environment(environment)
    estimator = estimate_tokens or env.estimate_tokens
    ordered = get_ordered_messages(conversation)
    tokens = {m.id: estimator(m) for m in ordered}

    current_tokens = sum(tokens.values())
    if current_tokens <= max_tokens:
        return conversation

    system_ids = {m.id for m in ordered if m.role == Role.SYSTEM} if preserve_system_messages else set[str]()
    non_system = [m for m in ordered if m.role != Role.SYSTEM]
    protected = non_system[-preserve_last_n:] if preserve_last_n > 0 else []
    protected_ids = {m.id for m in protected}
    # A protected tool-result keeps its tool-use alive
    protected_ids |= _tool_uses_for_results(ordered, protected) - system_ids

    removable = [m for m in ordered if m.id not in system_ids and m.id not in protected_ids]
    budget = max_tokens - sum(tokens[id] for id in system_ids) - sum(tokens[id] for id in protected_ids)

    kept_removable: list[Message] = []
    if budget > 0:
        used = 0
        for message in reversed(removable):
            if used + tokens[message.id] > budget:
                break
            kept_removable.append(message)
            used += tokens[message.id]

    keep = system_ids | protected_ids | {m.id for m in kept_removable}
    reachable_uses = {
        m.tool_call.id for m in ordered if m.id in keep and m.role == Role.TOOL_USE and m.tool_call is not None
    }
    orphans = {m.id for m in kept_removable if m.tool_result is not None and m.tool_result.call_id not in reachable_uses}
    keep -= orphans

    logger.debug(
        "Truncating conversation %s from %d to <= %d tokens: keeping %d of %d messages (budget %d)",
        conversation.id,
        current_tokens,
        max_tokens,
        len(keep),
        len(ordered),
        budget,
    )
    return _select(conversation, ordered, keep, env)


def truncate_from_position(
    conversation: Conversation,
    position: int,
    *,
    preserve_system_messages: bool = True,
    environment: Environment | None = None,
) -> Conversation:
    """
    Keeps the messages at `position` and later, plus earlier system messages unless disabled.

    Earlier tool-use messages referenced by a kept tool-result are kept as well.
    """
    if not 0 <= position <= len(conversation.ids):
        raise InvalidPositionError(len(conversation.ids), position)

    env = resolve_environment(environment)
    ordered = get_ordered_messages(conversation)
    tail = [m for m in ordered if m.position >= position]
    keep = {m.id for m in tail}
    if preserve_system_messages:
        keep |= {m.id for m in ordered if m.role == Role.SYSTEM}
    keep |= _tool_uses_for_results(ordered, tail)
    return _select(conversation, ordered, keep, env)


def get_recent_messages(
    conversation: Conversation,
    count: int,
    *,
    include_hidden: bool = False,
    include_system: bool = False,
) -> list[Message]:
    """
    The last `count` messages, by default without hidden and system messages.
    """
    if count <= 0:
        return []
    filtered = [
        m
        for m in get_ordered_messages(conversation)
        if (include_hidden or not m.hidden) and (include_system or m.role != Role.SYSTEM)
    ]
    return filtered[-count:]
