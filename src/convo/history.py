"""
Branching undo/redo history over immutable Conversation values.

Nodes live in an arena (a flat list) and reference each other by index: every
node knows its parent index and the ordered indices of its children. Pushing
after an undo adds a sibling branch; existing branches are never discarded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, final

import msgspec
from msgspec import Struct

from convo.conversation.integrity import assert_conversation_integrity
from convo.conversation.serialize import deserialize_conversation
from convo.environment import Environment, resolve_environment
from convo.exceptions import ConvoError, SerializationError
from convo.models import Conversation
from convo.serialization import to_json

logger = logging.getLogger(__name__)

# Nesting limit of the JSON snapshot form, well under the C recursion limit msgspec runs into.
MAX_SNAPSHOT_JSON_DEPTH = 500


@final
@dataclass(frozen=True, slots=True)
class Mutation:
    """Result of a bound operation that produces the next conversation state."""

    conversation: Conversation


@final
@dataclass(frozen=True, slots=True)
class Query[T]:
    """Result of a bound operation that only reads the current state."""

    value: T


def mutation(fn: Callable[..., Conversation]) -> Callable[..., Mutation]:
    """
    Wraps an operation returning a Conversation so that `bind` pushes its result.
    """

    def wrapper(conversation: Conversation, *args: Any, **kwargs: Any) -> Mutation:
        return Mutation(fn(conversation, *args, **kwargs))

    return wrapper


def query(fn: Callable[..., Any]) -> Callable[..., Query[Any]]:
    """
    Wraps a read-only operation. The wrapped function is not passed an environment.
    """

    def wrapper(
        conversation: Conversation, *args: Any, environment: Environment | None = None, **kwargs: Any
    ) -> Query[Any]:
        return Query(fn(conversation, *args, **kwargs))

    return wrapper


class HistoryNodeSnapshot(Struct, frozen=True, kw_only=True):
    conversation: Conversation
    children: tuple[HistoryNodeSnapshot, ...] = ()


class HistorySnapshot(Struct, frozen=True, kw_only=True, rename="camel"):
    """
    The whole tree, root first, plus the child-index path from the root to the current node.
    """

    root: HistoryNodeSnapshot
    current_path: tuple[int, ...] = ()


@dataclass(slots=True)
class _HistoryNode:
    conversation: Conversation
    parent: int | None
    children: list[int] = field(default_factory=list)


class ConversationHistory:
    """
    Undo/redo/branch navigation over conversation states.

    Not safe for concurrent mutation; a history belongs to a single session.
    Navigation methods return the new current conversation, or None when the
    move is not possible.
    """

    _nodes: list[_HistoryNode]
    _cursor: int
    _environment: Environment

    def __init__(self, initial: Conversation, environment: Environment | None = None) -> None:
        self._nodes = [_HistoryNode(initial, None)]
        self._cursor = 0
        self._environment = resolve_environment(environment)

    @property
    def _current_node(self) -> _HistoryNode:
        return self._nodes[self._cursor]

    def _siblings(self) -> list[int]:
        parent = self._current_node.parent
        return [self._cursor] if parent is None else self._nodes[parent].children

    @property
    def current(self) -> Conversation:
        return self._current_node.conversation

    @property
    def environment(self) -> Environment:
        return self._environment

    @property
    def can_undo(self) -> bool:
        return self._current_node.parent is not None

    @property
    def can_redo(self) -> bool:
        return bool(self._current_node.children)

    @property
    def branch_count(self) -> int:
        """Number of sibling branches at the current level (1 at the root)."""
        return len(self._siblings())

    @property
    def branch_index(self) -> int:
        """Index of the current node among its siblings (0 at the root)."""
        return self._siblings().index(self._cursor)

    @property
    def redo_count(self) -> int:
        """Number of branches reachable with `redo` from here."""
        return len(self._current_node.children)

    def push(self, conversation: Conversation) -> None:
        """
        Adds `conversation` as a new child of the current node and moves to it.
        """
        index = len(self._nodes)
        self._nodes.append(_HistoryNode(conversation, self._cursor))
        self._current_node.children.append(index)
        logger.debug(
            "History push: node %d under %d (%d branch(es))",
            index,
            self._cursor,
            len(self._current_node.children),
        )
        self._cursor = index

    def undo(self) -> Conversation | None:
        parent = self._current_node.parent
        if parent is None:
            return None
        logger.debug("History undo: %d -> %d", self._cursor, parent)
        self._cursor = parent
        return self.current

    def redo(self, child_index: int = 0) -> Conversation | None:
        children = self._current_node.children
        if not 0 <= child_index < len(children):
            return None
        logger.debug("History redo: %d -> %d", self._cursor, children[child_index])
        self._cursor = children[child_index]
        return self.current

    def switch_to_branch(self, index: int) -> Conversation | None:
        """
        Moves to the sibling at `index` under the current node's parent.
        """
        parent = self._current_node.parent
        if parent is None:
            return None
        siblings = self._nodes[parent].children
        if not 0 <= index < len(siblings):
            return None
        self._cursor = siblings[index]
        return self.current

    def get_path(self) -> list[Conversation]:
        """
        Conversations from the root to the current node, inclusive.
        """
        path: list[Conversation] = []
        node: int | None = self._cursor
        while node is not None:
            path.append(self._nodes[node].conversation)
            node = self._nodes[node].parent
        path.reverse()
        return path

    def bind(self, fn: Callable[..., Mutation | Query[Any]]) -> Callable[..., Any]:
        """
        Binds `fn` to the current conversation and this history's environment.

        The wrapper calls `fn(current, *args, environment=..., **kwargs)`. A
        Mutation result is pushed and its conversation returned; a Query result
        returns its value and leaves the history untouched.
        """

        def bound(*args: Any, **kwargs: Any) -> Any:
            match fn(self.current, *args, environment=self._environment, **kwargs):
                case Mutation(conversation=conversation):
                    self.push(conversation)
                    return conversation
                case Query(value=value):
                    return value
                case other:
                    raise TypeError(f"bound history functions must return Mutation or Query, got {type(other)!r}")

        return bound

    # ---------- Snapshots ----------

    def _current_path(self) -> tuple[int, ...]:
        path: list[int] = []
        node = self._cursor
        while (parent := self._nodes[node].parent) is not None:
            path.append(self._nodes[parent].children.index(node))
            node = parent
        path.reverse()
        return tuple(path)

    def snapshot(self) -> HistorySnapshot:
        root = _assemble([(node.conversation, node.children) for node in self._nodes])
        return HistorySnapshot(root=root, current_path=self._current_path())

    def restore(self, snapshot: HistorySnapshot) -> None:
        """
        Replaces the whole tree with `snapshot` and moves to its current path.

        The history is left untouched if the snapshot is invalid.
        """
        nodes: list[_HistoryNode] = []
        pending: list[tuple[HistoryNodeSnapshot, int | None]] = [(snapshot.root, None)]
        while pending:
            node, parent = pending.pop()
            try:
                assert_conversation_integrity(node.conversation)
            except ConvoError as e:
                raise SerializationError(f"invalid conversation in history snapshot: {e.message}", cause=e) from e
            index = len(nodes)
            nodes.append(_HistoryNode(node.conversation, parent))
            if parent is not None:
                nodes[parent].children.append(index)
            pending.extend((child, index) for child in reversed(node.children))

        cursor = 0
        for step, child_index in enumerate(snapshot.current_path):
            children = nodes[cursor].children
            if not 0 <= child_index < len(children):
                raise SerializationError(
                    f"invalid history path: step {step} selects child {child_index} of {len(children)}"
                )
            cursor = children[child_index]

        self._nodes = nodes
        self._cursor = cursor
        logger.debug("Restored history with %d node(s), cursor at %d", len(nodes), cursor)

    @classmethod
    def from_snapshot(cls, snapshot: HistorySnapshot, environment: Environment | None = None) -> ConversationHistory:
        history = cls(snapshot.root.conversation, environment)
        history.restore(snapshot)
        return history


def _assemble(entries: list[tuple[Conversation, list[int]]]) -> HistoryNodeSnapshot:
    """
    Builds nested snapshot nodes from a flat list where every child index is greater than its parent's.
    """
    built: dict[int, HistoryNodeSnapshot] = {}
    for index in reversed(range(len(entries))):
        conversation, children = entries[index]
        built[index] = HistoryNodeSnapshot(
            conversation=conversation,
            children=tuple(built.pop(child) for child in children),
        )
    return built[0]


def _tree_depth(root: HistoryNodeSnapshot) -> int:
    deepest = 0
    pending = [(root, 1)]
    while pending:
        node, depth = pending.pop()
        deepest = max(deepest, depth)
        pending.extend((child, depth + 1) for child in node.children)
    return deepest


def dump_history_snapshot(snapshot: HistorySnapshot) -> str:
    """
    Encodes a snapshot to its JSON wire form `{root: {conversation, children}, currentPath}`.

    The nested form is limited to MAX_SNAPSHOT_JSON_DEPTH levels; deeper trees
    only round-trip in memory through `snapshot()` and `restore()`.
    """
    depth = _tree_depth(snapshot.root)
    if depth > MAX_SNAPSHOT_JSON_DEPTH:
        raise SerializationError(
            f"history is {depth} levels deep; the JSON form supports at most {MAX_SNAPSHOT_JSON_DEPTH}",
        )
    try:
        return to_json(snapshot).decode("utf-8")
    except RecursionError as e:
        raise SerializationError("history snapshot is nested too deeply to encode", cause=e) from e


def _load_node(raw: object) -> HistoryNodeSnapshot:
    entries: list[tuple[Conversation, list[int]]] = []
    pending: list[tuple[object, int | None, int]] = [(raw, None, 1)]
    while pending:
        item, parent, depth = pending.pop()
        if depth > MAX_SNAPSHOT_JSON_DEPTH:
            raise SerializationError(f"history snapshot is deeper than {MAX_SNAPSHOT_JSON_DEPTH} levels")
        match item:
            case {"conversation": Mapping() as conversation, **rest}:
                children = rest.get("children", [])
                if not isinstance(children, list):
                    raise SerializationError("history node children must be a list")
            case _:
                raise SerializationError("history node must be an object with a conversation")
        index = len(entries)
        entries.append((deserialize_conversation(conversation), []))
        if parent is not None:
            entries[parent][1].append(index)
        pending.extend((child, index, depth + 1) for child in reversed(children))
    return _assemble(entries)


def load_history_snapshot(data: str | bytes | Mapping[str, Any]) -> HistorySnapshot:
    """
    Decodes a snapshot, running every conversation through full deserialization.
    """
    try:
        raw: object = msgspec.json.decode(data) if isinstance(data, str | bytes) else data
    except msgspec.DecodeError as e:
        raise SerializationError(f"failed to decode history snapshot: {e}", cause=e) from e
    except RecursionError as e:
        raise SerializationError("history snapshot is nested too deeply to decode", cause=e) from e

    match raw:
        case {"root": root, **rest}:
            path = rest.get("currentPath", [])
            if not isinstance(path, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in path):
                raise SerializationError("currentPath must be a list of child indices")
            return HistorySnapshot(root=_load_node(root), current_path=tuple(path))
        case _:
            raise SerializationError("history snapshot must be an object with a root node")
