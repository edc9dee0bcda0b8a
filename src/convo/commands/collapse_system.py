from pathlib import Path

from convo.conversation import collapse_system_messages, get_system_messages
from convo.fs import read_conversation_file, write_conversation_file


def collapse_system(path: Path, output: Path | None) -> None:
    conversation = read_conversation_file(path)
    collapsed = collapse_system_messages(conversation)

    if collapsed is conversation:
        print("Nothing to collapse.")
        return

    target = output or path
    write_conversation_file(target, collapsed)
    print(f"Collapsed {len(get_system_messages(conversation))} system messages into one, written to {target}")
