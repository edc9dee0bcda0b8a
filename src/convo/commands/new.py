from pathlib import Path

from convo.conversation import append_system_message, create_conversation
from convo.exceptions import InvalidInputError
from convo.fs import write_conversation_file


def new(path: Path, title: str | None, system: str | None, force: bool) -> None:
    if path.exists() and not force:
        raise InvalidInputError(f"{path} already exists. Use --force to overwrite.", {"path": str(path)})

    conversation = create_conversation(title=title)
    if system:
        conversation = append_system_message(conversation, system)

    write_conversation_file(path, conversation)
    print(f"Created conversation {conversation.id} in {path}")
