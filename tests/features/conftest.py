# pyright: standard
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from convo.context import truncate_to_token_limit
from convo.conversation import (
    append_messages,
    append_tool_result,
    append_user_message,
    create_conversation,
    get_ordered_messages,
    validate_conversation,
)
from convo.environment import Environment
from convo.exceptions import ConvoError
from convo.history import ConversationHistory
from convo.models import Conversation, MessageInput, Role
from convo.streaming import append_streaming_message, cancel_streaming_message


@pytest.fixture
def state() -> dict[str, Any]:
    """A carrier for the conversation, history and last error of a scenario."""
    return {}


def _csv(text: str) -> list[str]:
    return [item.strip() for item in text.split(",")]


# GIVEN steps


@given("an empty conversation with a deterministic environment")
def given_empty_conversation(state: dict[str, Any], empty: Conversation) -> None:
    state["conversation"] = empty


@given(parsers.parse('a history rooted at conversation "{name}"'))
def given_history(state: dict[str, Any], env: Environment, name: str) -> None:
    root = create_conversation(title=name, environment=env)
    state["named"] = {name: root}
    state["history"] = ConversationHistory(root, env)


@given("a streaming assistant message")
def given_streaming_message(state: dict[str, Any], env: Environment) -> None:
    state["conversation"], state["streaming_id"] = append_streaming_message(state["conversation"], environment=env)


# WHEN steps


@given(parsers.parse('I append the messages "{messages}"'))
@when(parsers.parse('I append the messages "{messages}"'))
def when_append_messages(state: dict[str, Any], env: Environment, messages: str) -> None:
    inputs = []
    for item in _csv(messages):
        role, content = item.split(":", 1)
        inputs.append(MessageInput(role=Role(role), content=content))
    state["conversation"] = append_messages(state["conversation"], *inputs, environment=env)


@when(parsers.parse('I try to append a tool result for call "{call_id}"'))
def when_append_orphan_result(state: dict[str, Any], env: Environment, call_id: str) -> None:
    try:
        state["conversation"] = append_tool_result(state["conversation"], call_id, environment=env)
    except ConvoError as e:
        state["error"] = e


@when(parsers.parse("I truncate the conversation to {max_tokens:d} tokens preserving the last {count:d} messages"))
def when_truncate(state: dict[str, Any], env: Environment, max_tokens: int, count: int) -> None:
    state["conversation"] = truncate_to_token_limit(
        state["conversation"], max_tokens, preserve_last_n=count, environment=env
    )


@when(parsers.parse('I push conversation "{name}"'))
def when_push(state: dict[str, Any], env: Environment, name: str) -> None:
    history: ConversationHistory = state["history"]
    conversation = append_user_message(history.current, name, environment=env)
    state["named"][name] = conversation
    history.push(conversation)


@when("I undo")
def when_undo(state: dict[str, Any]) -> None:
    assert state["history"].undo() is not None


@when("the streaming message is cancelled")
def when_cancel_streaming(state: dict[str, Any], env: Environment) -> None:
    state["conversation"] = cancel_streaming_message(state["conversation"], state["streaming_id"], environment=env)


# THEN steps


@then(parsers.parse("the conversation has {count:d} messages"))
def then_message_count(state: dict[str, Any], count: int) -> None:
    assert len(state["conversation"].ids) == count


@then(parsers.parse('the positions are "{positions}"'))
def then_positions(state: dict[str, Any], positions: str) -> None:
    expected = [int(p) for p in _csv(positions)]
    assert [m.position for m in get_ordered_messages(state["conversation"])] == expected


@then(parsers.parse('the contents are "{contents}"'))
def then_contents(state: dict[str, Any], contents: str) -> None:
    assert [m.content for m in get_ordered_messages(state["conversation"])] == _csv(contents)


@then("the conversation has no integrity issues")
def then_no_issues(state: dict[str, Any]) -> None:
    assert validate_conversation(state["conversation"]) == []


@then(parsers.parse('the operation fails with error code "{code}"'))
def then_error_code(state: dict[str, Any], code: str) -> None:
    error: ConvoError = state["error"]
    assert error.code.value == code


@then(parsers.parse("the branch count is {count:d}"))
def then_branch_count(state: dict[str, Any], count: int) -> None:
    assert state["history"].branch_count == count


@then(parsers.parse('undoing then redoing branch {index:d} gives conversation "{name}"'))
def then_redo_branch(state: dict[str, Any], index: int, name: str) -> None:
    history: ConversationHistory = state["history"]
    _ = history.undo()
    assert history.redo(index) is state["named"][name]


@then(parsers.parse('switching to branch {index:d} gives conversation "{name}"'))
def then_switch_branch(state: dict[str, Any], index: int, name: str) -> None:
    assert state["history"].switch_to_branch(index) is state["named"][name]
