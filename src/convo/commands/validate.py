from pathlib import Path
from typing import Any

import msgspec
import typer
from rich.console import Console
from rich.table import Table

from convo.conversation import validate_conversation
from convo.conversation.serialize import migrate_conversation
from convo.exceptions import SerializationError
from convo.models import Conversation
from convo.serialization import convert, from_json


def _load_unchecked(path: Path) -> Conversation:
    """
    Decodes a conversation file without the load-time integrity checks, so that issues can be reported.
    """
    try:
        raw = from_json(dict[str, Any], path.read_bytes())
        return convert(migrate_conversation(raw), Conversation)
    except OSError as e:
        raise SerializationError(f"cannot read conversation file {path}: {e.strerror or e}", cause=e) from e
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        raise SerializationError(f"failed to decode conversation file {path}: {e}", cause=e) from e


def validate(path: Path) -> None:
    console = Console()
    conversation = _load_unchecked(path)
    issues = validate_conversation(conversation)

    if not issues:
        console.print(f"[green]OK[/green] {len(conversation.ids)} message(s), no integrity issues.")
        return

    table = Table(title="Integrity issues", show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Code", style="red")
    table.add_column("Message")
    for issue in issues:
        table.add_row(issue.code.value, issue.message)
    console.print(table)
    raise typer.Exit(code=1)
