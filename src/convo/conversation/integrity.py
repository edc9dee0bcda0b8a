from enum import Enum
from typing import Any

from msgspec import Struct, field

from convo.exceptions import IntegrityError
from convo.models import Conversation, Role


class IssueCode(str, Enum):
    MISSING_MESSAGE = "missing-message"
    UNLISTED_MESSAGE = "unlisted-message"
    DUPLICATE_MESSAGE_ID = "duplicate-message-id"
    POSITION_MISMATCH = "position-mismatch"
    ORPHAN_TOOL_RESULT = "orphan-tool-result"
    TOOL_RESULT_BEFORE_CALL = "tool-result-before-call"
    DUPLICATE_TOOL_CALL = "duplicate-tool-call"


class IntegrityIssue(Struct, frozen=True):
    code: IssueCode
    message: str
    data: dict[str, Any] = field(default_factory=dict)


def validate_conversation(conversation: Conversation) -> list[IntegrityIssue]:
    """
    Checks the conversation invariants and returns every violation found.

    Covers the ids/messages bijection, positional contiguity and tool-call linkage.
    An empty list means the conversation is consistent.
    """
    issues: list[IntegrityIssue] = []
    seen_ids: set[str] = set()

    for index, id in enumerate(conversation.ids):
        if id in seen_ids:
            issues.append(
                IntegrityIssue(
                    IssueCode.DUPLICATE_MESSAGE_ID,
                    f"duplicate message id in ids: {id}",
                    {"id": id, "position": index},
                )
            )
        else:
            seen_ids.add(id)

        message = conversation.messages.get(id)
        if message is None:
            issues.append(
                IntegrityIssue(
                    IssueCode.MISSING_MESSAGE,
                    f"missing message for id {id}",
                    {"id": id, "position": index},
                )
            )
        elif message.position != index:
            issues.append(
                IntegrityIssue(
                    IssueCode.POSITION_MISMATCH,
                    f"message {id} has position {message.position} but is listed at {index}",
                    {"id": id, "position": index, "actual": message.position},
                )
            )

    for id in conversation.messages:
        if id not in seen_ids:
            issues.append(IntegrityIssue(IssueCode.UNLISTED_MESSAGE, f"message {id} is not listed in ids", {"id": id}))

    # toolCall.id -> (index, message id) of the first tool-use declaring it
    tool_uses: dict[str, tuple[int, str]] = {}
    for index, id in enumerate(conversation.ids):
        message = conversation.messages.get(id)
        if message is None or message.role != Role.TOOL_USE or message.tool_call is None:
            continue
        call_id = message.tool_call.id
        if call_id in tool_uses:
            issues.append(
                IntegrityIssue(
                    IssueCode.DUPLICATE_TOOL_CALL,
                    f"duplicate toolCall.id {call_id}",
                    {"toolCallId": call_id, "messageId": message.id},
                )
            )
        else:
            tool_uses[call_id] = (index, message.id)

    for index, id in enumerate(conversation.ids):
        message = conversation.messages.get(id)
        if message is None or message.role != Role.TOOL_RESULT or message.tool_result is None:
            continue
        call_id = message.tool_result.call_id
        match tool_uses.get(call_id):
            case None:
                issues.append(
                    IntegrityIssue(
                        IssueCode.ORPHAN_TOOL_RESULT,
                        f"tool-result references missing tool-use {call_id}",
                        {"callId": call_id, "messageId": message.id},
                    )
                )
            case (use_index, use_message_id) if use_index >= index:
                issues.append(
                    IntegrityIssue(
                        IssueCode.TOOL_RESULT_BEFORE_CALL,
                        f"tool-result {call_id} occurs before tool-use",
                        {"callId": call_id, "messageId": message.id, "toolUseMessageId": use_message_id},
                    )
                )
            case _:
                pass

    return issues


def assert_conversation_integrity(conversation: Conversation) -> None:
    """
    Raises IntegrityError carrying the full issue list if the conversation is inconsistent.
    """
    issues = validate_conversation(conversation)
    if issues:
        raise IntegrityError("conversation integrity check failed", issues=issues)


def ensure_integrity(conversation: Conversation) -> Conversation:
    assert_conversation_integrity(conversation)
    return conversation
