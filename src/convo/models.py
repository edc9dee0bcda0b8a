from enum import Enum
from typing import Any, Literal

from msgspec import Struct, field

CURRENT_SCHEMA_VERSION = 1


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    DEVELOPER = "developer"
    TOOL_USE = "tool-use"
    TOOL_RESULT = "tool-result"
    SNAPSHOT = "snapshot"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class MessageLifecycle(str, Enum):
    STREAMING = "streaming"
    FINAL = "final"


class ToolOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class TextPart(Struct, frozen=True, tag="text", tag_field="type"):
    text: str

    @property
    def type(self) -> Literal["text"]:
        return "text"


class ImagePart(Struct, frozen=True, kw_only=True, tag="image", tag_field="type", rename="camel"):
    url: str
    mime_type: str | None = None
    # Optional caption
    text: str | None = None

    @property
    def type(self) -> Literal["image"]:
        return "image"


type ContentPart = TextPart | ImagePart
type Content = str | tuple[ContentPart, ...]


class ToolCall(Struct, frozen=True, kw_only=True):
    id: str
    name: str
    arguments: Any = None


class ToolResult(Struct, frozen=True, kw_only=True, rename="camel"):
    call_id: str
    outcome: ToolOutcome
    content: Any = None


class TokenUsage(Struct, frozen=True, kw_only=True):
    prompt: int = 0
    completion: int = 0
    total: int = 0


class MessageInput(Struct, frozen=True, kw_only=True, rename="camel"):
    """
    Caller-supplied description of a message before it is appended.

    Ids, positions and timestamps are assigned by the engine.
    """

    role: Role
    content: Content = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    hidden: bool = False
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    token_usage: TokenUsage | None = None
    goal_completed: bool | None = None


class Message(Struct, frozen=True, kw_only=True, rename="camel"):
    """
    Immutable representation of a single message within a conversation.

    `position` always equals the message's index in `Conversation.ids`.
    `goal_completed` is only meaningful for assistant messages.
    """

    id: str
    role: Role
    content: Content
    position: int
    created_at: str
    metadata: dict[str, Any] = field(default_factory=dict)
    hidden: bool = False
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    token_usage: TokenUsage | None = None
    goal_completed: bool | None = None
    lifecycle: MessageLifecycle = MessageLifecycle.FINAL


class Conversation(Struct, frozen=True, kw_only=True, rename="camel"):
    """
    Immutable conversation value: an ordered id list plus an id -> Message map.
    """

    schema_version: int = CURRENT_SCHEMA_VERSION
    id: str
    title: str | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    ids: tuple[str, ...] = ()
    messages: dict[str, Message] = field(default_factory=dict)
    created_at: str
    updated_at: str


class ToolInteraction(Struct, frozen=True):
    call: ToolCall
    result: ToolResult | None = None


class ConversationStatistics(Struct, frozen=True, kw_only=True):
    total: int
    by_role: dict[str, int]
    hidden: int
    with_images: int
