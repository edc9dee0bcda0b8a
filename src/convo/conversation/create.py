from collections.abc import Iterable, Mapping
from typing import Any

from convo.environment import Environment, resolve_environment
from convo.exceptions import InvalidInputError
from convo.models import CURRENT_SCHEMA_VERSION, Conversation, ConversationStatus
from convo.serialization import json_safety_error


def create_conversation(
    *,
    id: str | None = None,
    title: str | None = None,
    status: ConversationStatus = ConversationStatus.ACTIVE,
    metadata: Mapping[str, Any] | None = None,
    tags: Iterable[str] = (),
    environment: Environment | None = None,
) -> Conversation:
    """
    Creates a new empty conversation.

    The id (unless given) and both timestamps come from the environment.
    """
    env = resolve_environment(environment)
    metadata_dict = dict(metadata or {})
    if error := json_safety_error(metadata_dict):
        raise InvalidInputError(f"conversation metadata is not JSON-safe: {error}", {"field": "metadata"})

    now = env.now()
    return Conversation(
        schema_version=CURRENT_SCHEMA_VERSION,
        id=id if id is not None else env.random_id(),
        title=title,
        status=ConversationStatus(status),
        metadata=metadata_dict,
        tags=tuple(tags),
        ids=(),
        messages={},
        created_at=now,
        updated_at=now,
    )
