import os
from pathlib import Path
from tempfile import mkstemp

import msgspec

from convo.conversation.serialize import deserialize_conversation, serialize_conversation
from convo.exceptions import SerializationError
from convo.models import Conversation
from convo.serialization import to_json


def atomic_write_text(path: Path, text: str | bytes, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = mkstemp(suffix=path.suffix, prefix=path.name + ".tmp", dir=path.parent)
    tmp_path = Path(tmp)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            match text:
                case str():
                    _ = f.write(text)
                case bytes():
                    _ = f.write(text.decode(encoding))

        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def read_conversation_file(path: Path) -> Conversation:
    """
    Loads a conversation from a JSON file, migrating older schema versions.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SerializationError(f"cannot read conversation file {path}: {e.strerror or e}", cause=e) from e
    return deserialize_conversation(data)


def write_conversation_file(path: Path, conversation: Conversation) -> None:
    """
    Writes a conversation as indented JSON, replacing the file atomically.
    """
    encoded = msgspec.json.format(to_json(serialize_conversation(conversation)), indent=2)
    atomic_write_text(path, encoded + b"\n")
