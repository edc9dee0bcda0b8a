"""
The conversation engine.

Provides:
- Creation of empty conversations
- Append / tool-interaction / redaction / system-message operations
- The integrity validator
- Read-only queries
- Serialization with schema migration
"""

from .append import (
    append_assistant_message,
    append_messages,
    append_system_message,
    append_tool_result,
    append_tool_use,
    append_user_message,
    validate_message_input,
)
from .create import create_conversation
from .integrity import (
    IntegrityIssue,
    IssueCode,
    assert_conversation_integrity,
    validate_conversation,
)
from .modify import DEFAULT_REDACTED_PLACEHOLDER, redact_message_at_position
from .query import (
    get_message_at_position,
    get_message_by_id,
    get_message_ids,
    get_messages,
    get_pending_tool_calls,
    get_statistics,
    get_tool_interactions,
    search_messages,
)
from .serialize import (
    conversation_from_json,
    conversation_to_json,
    deserialize_conversation,
    migrate_conversation,
    serialize_conversation,
    strip_transient_metadata,
)
from .store import get_ordered_messages
from .system_messages import (
    collapse_system_messages,
    get_first_system_message,
    get_system_messages,
    has_system_message,
    prepend_system_message,
    replace_system_message,
)

__all__ = [
    "DEFAULT_REDACTED_PLACEHOLDER",
    "IntegrityIssue",
    "IssueCode",
    "append_assistant_message",
    "append_messages",
    "append_system_message",
    "append_tool_result",
    "append_tool_use",
    "append_user_message",
    "assert_conversation_integrity",
    "collapse_system_messages",
    "conversation_from_json",
    "conversation_to_json",
    "create_conversation",
    "deserialize_conversation",
    "get_first_system_message",
    "get_message_at_position",
    "get_message_by_id",
    "get_message_ids",
    "get_messages",
    "get_ordered_messages",
    "get_pending_tool_calls",
    "get_statistics",
    "get_system_messages",
    "get_tool_interactions",
    "has_system_message",
    "migrate_conversation",
    "prepend_system_message",
    "redact_message_at_position",
    "replace_system_message",
    "search_messages",
    "serialize_conversation",
    "strip_transient_metadata",
    "validate_conversation",
    "validate_message_input",
]
