"""
Injected clock, id generator, token estimator and plugin pipeline.

Every mutating operation takes an optional `environment`; omitted fields fall
back to the defaults below.
"""

import math
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, final, runtime_checkable

from convo.content import message_text
from convo.models import Message, MessageInput

type TokenEstimator = Callable[[Message], int]


@runtime_checkable
class MessageTransform(Protocol):
    """
    A plugin step applied to every MessageInput before it becomes a Message.

    Transforms may rewrite content and metadata. Changing role-defining
    structure (role, tool call id, tool result call id) is rejected by the engine.
    """

    def transform(self, message: MessageInput) -> MessageInput: ...


@final
@dataclass(frozen=True, slots=True)
class FunctionTransform:
    """Adapts a plain `MessageInput -> MessageInput` callable to MessageTransform."""

    fn: Callable[[MessageInput], MessageInput]
    name: str = ""

    def transform(self, message: MessageInput) -> MessageInput:
        return self.fn(message)


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def uuid4_id() -> str:
    return str(uuid.uuid4())


def simple_token_estimator(message: Message) -> int:
    """
    Rough estimate: 4 characters per token over the message's text content.
    """
    return math.ceil(len(message_text(message)) / 4)


@dataclass(frozen=True, slots=True)
class Environment:
    now: Callable[[], str] = utc_now
    random_id: Callable[[], str] = uuid4_id
    estimate_tokens: TokenEstimator = simple_token_estimator
    plugins: tuple[MessageTransform, ...] = ()

    def apply_plugins(self, message: MessageInput) -> MessageInput:
        for plugin in self.plugins:
            message = plugin.transform(message)
        return message


DEFAULT_ENVIRONMENT = Environment()


def resolve_environment(environment: Environment | None = None) -> Environment:
    return DEFAULT_ENVIRONMENT if environment is None else environment


def make_environment(
    *,
    now: Callable[[], str] | None = None,
    random_id: Callable[[], str] | None = None,
    estimate_tokens: TokenEstimator | None = None,
    plugins: Iterable[MessageTransform | Callable[[MessageInput], MessageInput]] = (),
) -> Environment:
    """
    Builds an Environment from any subset of overrides.

    Plain callables in `plugins` are wrapped in FunctionTransform.
    """
    steps = tuple(p if isinstance(p, MessageTransform) else FunctionTransform(p) for p in plugins)
    return Environment(
        now=now or DEFAULT_ENVIRONMENT.now,
        random_id=random_id or DEFAULT_ENVIRONMENT.random_id,
        estimate_tokens=estimate_tokens or DEFAULT_ENVIRONMENT.estimate_tokens,
        plugins=steps,
    )
