from pathlib import Path

from rich.console import Console
from rich.table import Table

from convo.content import message_to_string
from convo.conversation import get_messages
from convo.fs import read_conversation_file
from convo.models import Role
from convo.streaming import is_streaming_message

_ROLE_STYLES: dict[Role, str] = {
    Role.USER: "blue",
    Role.ASSISTANT: "green",
    Role.SYSTEM: "magenta",
    Role.TOOL_USE: "yellow",
    Role.TOOL_RESULT: "yellow",
}


def log(path: Path, show_all: bool) -> None:
    conversation = read_conversation_file(path)
    console = Console()
    messages = get_messages(conversation, include_hidden=show_all)

    if not messages:
        console.print("No messages in conversation.")
        return

    table = Table(
        title=conversation.title or conversation.id,
        show_header=True,
        header_style="bold",
        box=None,
        padding=(0, 1),
    )
    table.add_column("Pos", justify="right")
    table.add_column("Role")
    table.add_column("Message Snippet", overflow="ellipsis", min_width=20)

    for message in messages:
        role = Role(message.role)
        style = _ROLE_STYLES.get(role, "white")
        label = f"[{style}]{role.value}[/{style}]"
        if is_streaming_message(message):
            label += " [dim](streaming)[/dim]"

        if message.tool_call is not None:
            snippet = f"{message.tool_call.name}({message.tool_call.id})"
        elif message.tool_result is not None:
            snippet = f"{message.tool_result.outcome.value} for {message.tool_result.call_id}"
        else:
            lines = message_to_string(message).strip().splitlines()
            snippet = lines[0] if lines else ""

        table.add_row(str(message.position), label, snippet, style="dim" if message.hidden else "")

    console.print(table)
