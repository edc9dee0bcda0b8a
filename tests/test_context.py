# pyright: standard
import pytest

from convo.content import message_text
from convo.context import (
    estimate_conversation_tokens,
    get_recent_messages,
    truncate_from_position,
    truncate_to_token_limit,
)
from convo.conversation import (
    append_assistant_message,
    append_messages,
    append_system_message,
    append_tool_result,
    append_tool_use,
    append_user_message,
    get_ordered_messages,
    validate_conversation,
)
from convo.environment import Environment, make_environment
from convo.exceptions import InvalidInputError, InvalidPositionError
from convo.models import Conversation, Message, MessageInput, Role


def length_estimator(message: Message) -> int:
    return len(message_text(message))


def contents(conversation: Conversation) -> list[object]:
    return [m.content for m in get_ordered_messages(conversation)]


@pytest.fixture
def chat(empty: Conversation, env: Environment) -> Conversation:
    """A system message followed by four alternating user/assistant messages."""
    return append_messages(
        empty,
        MessageInput(role=Role.SYSTEM, content="system prompt"),
        MessageInput(role=Role.USER, content="first question"),
        MessageInput(role=Role.ASSISTANT, content="first answer"),
        MessageInput(role=Role.USER, content="second question"),
        MessageInput(role=Role.ASSISTANT, content="second answer"),
        environment=env,
    )


def test_estimate_uses_four_characters_per_token(empty: Conversation, env: Environment) -> None:
    conversation = append_user_message(empty, "12345678", environment=env)
    conversation = append_assistant_message(conversation, "123", environment=env)

    assert estimate_conversation_tokens(conversation) == 2 + 1
    assert estimate_conversation_tokens(conversation, length_estimator) == 11


def test_estimate_uses_environment_estimator(chat: Conversation) -> None:
    env = make_environment(estimate_tokens=lambda _: 7)

    assert estimate_conversation_tokens(chat, environment=env) == 35


def test_fitting_conversation_is_returned_as_is(chat: Conversation, env: Environment) -> None:
    assert truncate_to_token_limit(chat, 10_000, environment=env) is chat


def test_preserves_system_and_last_n_even_over_budget(chat: Conversation, env: Environment) -> None:
    # GIVEN a system message plus four messages
    # WHEN truncated to 1 token while preserving the last two
    result = truncate_to_token_limit(chat, 1, preserve_last_n=2, environment=env)

    # THEN the system message and the last two remain, renumbered
    assert contents(result) == ["system prompt", "second question", "second answer"]
    assert [m.position for m in get_ordered_messages(result)] == [0, 1, 2]
    assert validate_conversation(result) == []


def test_keeps_newest_messages_that_fit(chat: Conversation, env: Environment) -> None:
    # GIVEN a budget that fits the system prompt and the two newest messages
    budget = len("system prompt") + len("second question") + len("second answer")

    result = truncate_to_token_limit(chat, budget, estimate_tokens=length_estimator, environment=env)

    assert contents(result) == ["system prompt", "second question", "second answer"]


def test_greedy_scan_stops_at_first_overflow(empty: Conversation, env: Environment) -> None:
    # GIVEN small messages before a large one
    conversation = append_messages(
        empty,
        MessageInput(role=Role.USER, content="a"),
        MessageInput(role=Role.ASSISTANT, content="b"),
        MessageInput(role=Role.USER, content="cccccccccc"),
        MessageInput(role=Role.ASSISTANT, content="d"),
        environment=env,
    )

    # WHEN truncated to a budget the older small messages would still fit in
    result = truncate_to_token_limit(conversation, 5, estimate_tokens=length_estimator, environment=env)

    # THEN nothing older than the first message that did not fit survives
    assert contents(result) == ["d"]


def test_system_messages_are_removable_when_not_preserved(chat: Conversation, env: Environment) -> None:
    result = truncate_to_token_limit(
        chat,
        len("second answer"),
        estimate_tokens=length_estimator,
        preserve_system_messages=False,
        environment=env,
    )

    assert contents(result) == ["second answer"]


def test_truncation_is_idempotent(chat: Conversation, env: Environment) -> None:
    once = truncate_to_token_limit(chat, 1, preserve_last_n=2, environment=env)
    twice = truncate_to_token_limit(once, 1, preserve_last_n=2, environment=env)

    assert twice is once


def test_truncation_with_budget_left_is_idempotent(empty: Conversation, env: Environment) -> None:
    # GIVEN a tool interaction where only the result fits next to the reply
    conversation = append_user_message(empty, "hello there", environment=env)
    conversation = append_tool_use(conversation, "weather", call_id="call-1", content="calling weather", environment=env)
    conversation = append_tool_result(conversation, "call-1", {"temp": 3}, content="3 degrees", environment=env)
    conversation = append_assistant_message(conversation, "cold", environment=env)

    # WHEN truncated twice with a budget the greedy scan can partly fill
    once = truncate_to_token_limit(conversation, 14, estimate_tokens=length_estimator, environment=env)
    twice = truncate_to_token_limit(once, 14, estimate_tokens=length_estimator, environment=env)

    # THEN the orphaned tool-result is dropped and the second pass changes nothing
    assert contents(once) == ["cold"]
    assert validate_conversation(once) == []
    assert twice is once


def test_protected_tool_result_keeps_its_tool_use(empty: Conversation, env: Environment) -> None:
    # GIVEN a tool interaction followed by an assistant reply
    conversation = append_user_message(empty, "weather?", environment=env)
    conversation = append_tool_use(conversation, "weather", {"city": "Oslo"}, call_id="call-1", environment=env)
    conversation = append_tool_result(conversation, "call-1", {"temp": 3}, content="3 degrees", environment=env)
    conversation = append_assistant_message(conversation, "It is cold.", environment=env)

    # WHEN only the last two messages are protected and nothing else fits
    result = truncate_to_token_limit(conversation, 1, preserve_last_n=2, environment=env)

    # THEN the tool-use the protected result depends on is kept too
    assert [m.role for m in get_ordered_messages(result)] == [Role.TOOL_USE, Role.TOOL_RESULT, Role.ASSISTANT]
    assert validate_conversation(result) == []


def test_kept_tool_result_without_its_tool_use_is_dropped(empty: Conversation, env: Environment) -> None:
    # GIVEN a large tool-use followed by a small result and a small user message
    conversation = append_tool_use(empty, "t", call_id="call-1", content="x" * 20, environment=env)
    conversation = append_tool_result(conversation, "call-1", content="r", environment=env)
    conversation = append_user_message(conversation, "u", environment=env)

    # WHEN the budget only fits the two small messages
    result = truncate_to_token_limit(conversation, 5, estimate_tokens=length_estimator, environment=env)

    # THEN the orphaned result is dropped as well
    assert [m.role for m in get_ordered_messages(result)] == [Role.USER]


def test_negative_preserve_last_n_is_rejected(chat: Conversation, env: Environment) -> None:
    with pytest.raises(InvalidInputError):
        _ = truncate_to_token_limit(chat, 1, preserve_last_n=-1, environment=env)


def test_truncate_from_position_keeps_tail_and_system(chat: Conversation, env: Environment) -> None:
    result = truncate_from_position(chat, 3, environment=env)

    assert contents(result) == ["system prompt", "second question", "second answer"]
    assert [m.position for m in get_ordered_messages(result)] == [0, 1, 2]


def test_truncate_from_position_without_system(chat: Conversation, env: Environment) -> None:
    result = truncate_from_position(chat, 3, preserve_system_messages=False, environment=env)

    assert contents(result) == ["second question", "second answer"]


def test_truncate_from_position_edges(chat: Conversation, env: Environment) -> None:
    assert truncate_from_position(chat, 0, environment=env) is chat
    assert contents(truncate_from_position(chat, len(chat.ids), environment=env)) == ["system prompt"]


@pytest.mark.parametrize("position", [-1, 6])
def test_truncate_from_invalid_position_raises(chat: Conversation, env: Environment, position: int) -> None:
    with pytest.raises(InvalidPositionError):
        _ = truncate_from_position(chat, position, environment=env)


def test_get_recent_messages(chat: Conversation, env: Environment) -> None:
    conversation = append_messages(
        chat, MessageInput(role=Role.USER, content="hidden note", hidden=True), environment=env
    )
    conversation = append_system_message(conversation, "late system", environment=env)

    assert [m.content for m in get_recent_messages(conversation, 2)] == ["second question", "second answer"]
    assert [m.content for m in get_recent_messages(conversation, 2, include_hidden=True)] == [
        "second answer",
        "hidden note",
    ]
    assert [m.content for m in get_recent_messages(conversation, 1, include_system=True)] == ["late system"]
    assert get_recent_messages(conversation, 0) == []
