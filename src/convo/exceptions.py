from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from convo.conversation.integrity import IntegrityIssue


class ErrorCode(str, Enum):
    INVALID_INPUT = "invalid-input"
    INVALID_POSITION = "invalid-position"
    INVALID_TOOL_REFERENCE = "invalid-tool-reference"
    DUPLICATE_ID = "duplicate-id"
    INTEGRITY = "integrity"
    SERIALIZATION = "serialization"
    VALIDATION = "validation"
    LOCKED = "locked"
    NOT_FOUND = "not-found"


class ConvoError(Exception):
    """Base exception for all expected convo errors."""

    message: str
    code: ErrorCode
    context: dict[str, Any]
    cause: BaseException | None
    exit_code: int

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
        exit_code: int = 1,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = dict(context or {})
        self.cause = cause
        self.exit_code = exit_code
        if cause is not None:
            self.__cause__ = cause

    def detailed(self) -> str:
        """
        Formats the error with its code, context and cause on separate lines.
        """
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context:
            parts.append(f"Context: {json.dumps(self.context, indent=2, default=str)}")
        if self.cause is not None:
            parts.append(f"Caused by: {self.cause}")
        return "\n".join(parts)


class InvalidInputError(ConvoError):
    """Malformed message input (missing tool payloads, non JSON-safe data)."""

    def __init__(self, message: str, context: Mapping[str, Any] | None = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, context)


class InvalidPositionError(ConvoError):
    """Out-of-range or non-contiguous position reference."""

    expected: int
    actual: int

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"invalid position: expected {expected}, got {actual}",
            ErrorCode.INVALID_POSITION,
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class InvalidToolReferenceError(ConvoError):
    """A tool-result references a tool-use that is unknown at that point."""

    call_id: str

    def __init__(self, call_id: str):
        super().__init__(
            f"tool result references non-existent tool-use: {call_id}",
            ErrorCode.INVALID_TOOL_REFERENCE,
            {"callId": call_id},
        )
        self.call_id = call_id


class DuplicateIdError(ConvoError):
    """An identifier that must be unique is already taken."""

    def __init__(self, id: str, kind: str = "message"):
        super().__init__(f"{kind} with id {id} already exists", ErrorCode.DUPLICATE_ID, {"id": id, "kind": kind})


class IntegrityError(ConvoError):
    """Conversation invariants are violated."""

    issues: list[IntegrityIssue]

    def __init__(
        self,
        message: str,
        context: Mapping[str, Any] | None = None,
        issues: Sequence[IntegrityIssue] = (),
    ):
        merged = dict(context or {})
        if issues:
            merged["issues"] = [{"code": i.code.value, "message": i.message, "data": i.data} for i in issues]
        super().__init__(message, ErrorCode.INTEGRITY, merged)
        self.issues = list(issues)


class SerializationError(ConvoError):
    """Deserialization failed; wraps the originating error."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message, ErrorCode.SERIALIZATION, cause=cause)


class SchemaValidationError(ConvoError):
    """Shape/schema conformance failure."""

    def __init__(
        self,
        message: str,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, ErrorCode.VALIDATION, context, cause)


class LockedError(ConvoError):
    """Reserved for store collaborators; never raised by the engine."""

    def __init__(self, conversation_id: str):
        super().__init__(
            f"conversation {conversation_id} is locked (concurrent modification detected)",
            ErrorCode.LOCKED,
            {"conversationId": conversation_id},
        )


class NotFoundError(ConvoError):
    """Reserved for store collaborators; never raised by the engine."""

    def __init__(self, id: str):
        super().__init__(f"conversation with id {id} not found", ErrorCode.NOT_FOUND, {"id": id})
