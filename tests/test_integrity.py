# pyright: standard
import pytest
from msgspec.structs import replace

from convo.conversation import (
    IssueCode,
    append_tool_result,
    append_tool_use,
    append_user_message,
    assert_conversation_integrity,
    validate_conversation,
)
from convo.environment import Environment
from convo.exceptions import IntegrityError
from convo.models import Conversation


@pytest.fixture
def with_tools(empty: Conversation, env: Environment) -> Conversation:
    conversation = append_user_message(empty, "find cats", environment=env)
    conversation = append_tool_use(conversation, "search", {"q": "cats"}, call_id="call-1", environment=env)
    return append_tool_result(conversation, "call-1", ["cat.png"], environment=env)


def codes(conversation: Conversation) -> set[IssueCode]:
    return {issue.code for issue in validate_conversation(conversation)}


def test_valid_conversation_has_no_issues(with_tools: Conversation) -> None:
    assert validate_conversation(with_tools) == []
    assert_conversation_integrity(with_tools)


def test_duplicate_id_in_ids_is_reported(with_tools: Conversation) -> None:
    corrupted = replace(with_tools, ids=(*with_tools.ids, with_tools.ids[0]))

    assert IssueCode.DUPLICATE_MESSAGE_ID in codes(corrupted)


def test_missing_and_unlisted_messages_are_reported(with_tools: Conversation) -> None:
    # GIVEN a conversation whose first id has no message, and a message not listed in ids
    first = with_tools.ids[0]
    messages = dict(with_tools.messages)
    moved = messages.pop(first)
    messages["stray"] = replace(moved, id="stray")
    corrupted = replace(with_tools, messages=messages)

    # THEN both problems are found
    found = codes(corrupted)
    assert IssueCode.MISSING_MESSAGE in found
    assert IssueCode.UNLISTED_MESSAGE in found


def test_position_mismatch_is_reported(with_tools: Conversation) -> None:
    first = with_tools.messages[with_tools.ids[0]]
    corrupted = replace(with_tools, messages={**with_tools.messages, first.id: replace(first, position=7)})

    issues = validate_conversation(corrupted)
    assert [i.code for i in issues] == [IssueCode.POSITION_MISMATCH]
    assert issues[0].data["actual"] == 7


def test_orphan_tool_result_is_reported(with_tools: Conversation) -> None:
    # GIVEN a conversation where the tool-use message was removed
    use_id = with_tools.ids[1]
    remaining = [with_tools.messages[i] for i in with_tools.ids if i != use_id]
    renumbered = [replace(m, position=p) for p, m in enumerate(remaining)]
    corrupted = replace(with_tools, ids=tuple(m.id for m in renumbered), messages={m.id: m for m in renumbered})

    assert codes(corrupted) == {IssueCode.ORPHAN_TOOL_RESULT}


def test_reordered_tool_linkage_is_reported(with_tools: Conversation) -> None:
    # GIVEN the tool-result listed before its tool-use
    user_id, use_id, result_id = with_tools.ids
    order = (user_id, result_id, use_id)
    messages = {id: replace(with_tools.messages[id], position=p) for p, id in enumerate(order)}
    corrupted = replace(with_tools, ids=order, messages=messages)

    assert codes(corrupted) == {IssueCode.TOOL_RESULT_BEFORE_CALL}


def test_duplicate_tool_call_is_reported(with_tools: Conversation) -> None:
    use = with_tools.messages[with_tools.ids[1]]
    clone = replace(use, id="clone", position=3)
    corrupted = replace(with_tools, ids=(*with_tools.ids, "clone"), messages={**with_tools.messages, "clone": clone})

    assert codes(corrupted) == {IssueCode.DUPLICATE_TOOL_CALL}


def test_assert_integrity_raises_with_issue_list(with_tools: Conversation) -> None:
    corrupted = replace(with_tools, ids=(*with_tools.ids, with_tools.ids[0]))

    with pytest.raises(IntegrityError) as exc_info:
        assert_conversation_integrity(corrupted)

    assert exc_info.value.code.value == "integrity"
    assert exc_info.value.issues
    assert exc_info.value.context["issues"][0]["code"] == exc_info.value.issues[0].code.value
