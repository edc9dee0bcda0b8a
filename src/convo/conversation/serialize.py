"""
Conversion between Conversation values and the persisted JSON shape.

Wire shape: `{schemaVersion, id, title, status, metadata, tags, ids,
messages: {id: MessageJSON}, createdAt, updatedAt}`.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

import msgspec
from msgspec.structs import replace

from convo.exceptions import ConvoError, InvalidPositionError, SchemaValidationError, SerializationError
from convo.models import CURRENT_SCHEMA_VERSION, Conversation, Message, MessageLifecycle, Role
from convo.serialization import convert, to_dict, to_json

from .integrity import assert_conversation_integrity
from .modify import DEFAULT_REDACTED_PLACEHOLDER
from .store import get_ordered_messages, renumber, with_messages
from .tool_tracking import assert_tool_reference, register_tool_use

logger = logging.getLogger(__name__)

# Metadata marker used for streaming state before the explicit lifecycle field existed
LEGACY_STREAMING_KEY = "__streaming"


def is_transient_key(key: str) -> bool:
    return key.startswith("_")


def strip_transient_from_record(metadata: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in metadata.items() if not is_transient_key(k)}


def strip_transient_metadata(conversation: Conversation) -> Conversation:
    """
    Removes transient metadata (keys starting with '_') from the conversation and all its messages.
    """
    messages = [replace(m, metadata=strip_transient_from_record(m.metadata)) for m in get_ordered_messages(conversation)]
    stripped = with_messages(conversation, messages, conversation.updated_at)
    return replace(stripped, metadata=strip_transient_from_record(conversation.metadata))


def serialize_conversation(
    conversation: Conversation,
    *,
    strip_transient: bool = False,
    include_hidden: bool = True,
    redact_hidden_content: bool = False,
    redacted_placeholder: str = DEFAULT_REDACTED_PLACEHOLDER,
    redact_tool_arguments: bool = False,
    redact_tool_results: bool = False,
) -> dict[str, Any]:
    """
    Produces an export-safe plain dict of the conversation.

    Dropping hidden messages renumbers the remaining ones so the output stays loadable.
    """
    messages: list[Message] = []
    for message in get_ordered_messages(conversation):
        if message.hidden and not include_hidden:
            continue
        changes: dict[str, Any] = {}
        if strip_transient:
            changes["metadata"] = strip_transient_from_record(message.metadata)
        if redact_hidden_content and message.hidden:
            changes["content"] = redacted_placeholder
        if redact_tool_arguments and message.tool_call is not None:
            changes["tool_call"] = replace(message.tool_call, arguments=redacted_placeholder)
        if redact_tool_results and message.tool_result is not None:
            changes["tool_result"] = replace(message.tool_result, content=redacted_placeholder)
        messages.append(replace(message, **changes) if changes else message)

    exported = with_messages(conversation, renumber(messages), conversation.updated_at)
    if strip_transient:
        exported = replace(exported, metadata=strip_transient_from_record(conversation.metadata))
    return to_dict(exported)


def _migrate_v0(data: dict[str, Any]) -> dict[str, Any]:
    """
    Version 0 kept streaming state in a reserved metadata key.
    """
    messages: dict[str, Any] = {}
    for id, raw in data["messages"].items():
        match raw:
            case {"metadata": {**metadata}} if LEGACY_STREAMING_KEY in metadata:
                streaming = metadata.pop(LEGACY_STREAMING_KEY) is True
                raw = {**raw, "metadata": metadata}
                if streaming:
                    raw["lifecycle"] = MessageLifecycle.STREAMING.value
            case _:
                pass
        messages[id] = raw
    return {**data, "messages": messages}


# schemaVersion -> step producing the next version
_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0,
}


def _position_of(raw: object) -> int:
    match raw:
        case {"position": int(position)}:
            return position
        case _:
            return 0


def migrate_conversation(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Brings serialized conversation data up to the current schema version.

    Missing `schemaVersion` means version 0. A legacy list of messages is
    turned into `ids` plus an id map; messages missing from `ids` are appended
    in position order.
    """
    migrated = dict(data)
    version = migrated.get("schemaVersion", 0)
    if not isinstance(version, int) or isinstance(version, bool) or not 0 <= version <= CURRENT_SCHEMA_VERSION:
        raise SchemaValidationError(f"unsupported schemaVersion: {version!r}", {"schemaVersion": version})

    raw_messages = migrated.get("messages")
    raw_ids = migrated.get("ids")
    messages: dict[str, Any]
    ids: list[str]
    match raw_messages:
        case list():
            if not all(isinstance(m, dict) and isinstance(m.get("id"), str) for m in raw_messages):
                raise SchemaValidationError("every legacy message must be an object with a string id")
            ids = [m["id"] for m in raw_messages]
            messages = {m["id"]: m for m in raw_messages}
        case dict():
            messages = dict(raw_messages)
            if isinstance(raw_ids, list) and raw_ids and all(isinstance(i, str) for i in raw_ids):
                ids = list(raw_ids)
            else:
                ids = sorted(messages, key=lambda k: _position_of(messages[k]))
        case None:
            messages, ids = {}, []
        case _:
            raise SchemaValidationError("messages must be a list or an object", {"type": type(raw_messages).__name__})

    listed = [i for i in ids if i in messages]
    listed_set = set(listed)
    unlisted = sorted((k for k in messages if k not in listed_set), key=lambda k: _position_of(messages[k]))
    migrated["ids"] = listed + unlisted
    migrated["messages"] = messages
    migrated.setdefault("tags", [])

    while version < CURRENT_SCHEMA_VERSION:
        logger.debug("Migrating conversation %s from schema version %d", migrated.get("id"), version)
        migrated = _MIGRATIONS[version](migrated)
        version += 1
    migrated["schemaVersion"] = version
    return migrated


def _verify_loaded(conversation: Conversation) -> None:
    tool_uses: dict[str, str] = {}
    for index, id in enumerate(conversation.ids):
        message = conversation.messages.get(id)
        if message is None:
            raise SerializationError(f"missing message for id {id}")
        if message.id != id:
            raise SerializationError(f"message stored under {id} carries id {message.id}")
        if message.position != index:
            raise InvalidPositionError(index, message.position)
        if message.role == Role.TOOL_USE and message.tool_call is not None:
            tool_uses = register_tool_use(tool_uses, message.tool_call)
        if message.role == Role.TOOL_RESULT and message.tool_result is not None:
            assert_tool_reference(tool_uses, message.tool_result.call_id)
    assert_conversation_integrity(conversation)


def deserialize_conversation(data: Mapping[str, Any] | str | bytes) -> Conversation:
    """
    Rebuilds a Conversation from its serialized form, migrating older schema versions.

    Positional contiguity and tool linkage are re-validated. Any failure is
    raised as SerializationError wrapping the originating error.
    """
    try:
        raw: object = msgspec.json.decode(data) if isinstance(data, str | bytes) else data
        if not isinstance(raw, Mapping):
            raise SchemaValidationError("conversation data must be a JSON object", {"type": type(raw).__name__})
        conversation = convert(migrate_conversation(raw), Conversation)
        _verify_loaded(conversation)
    except (ConvoError, msgspec.ValidationError, msgspec.DecodeError) as e:
        message = e.message if isinstance(e, ConvoError) else str(e)
        raise SerializationError(f"failed to deserialize conversation: {message}", cause=e) from e
    return conversation


def conversation_to_json(conversation: Conversation, **options: Any) -> str:
    return to_json(serialize_conversation(conversation, **options)).decode("utf-8")


def conversation_from_json(text: str | bytes) -> Conversation:
    return deserialize_conversation(text)
