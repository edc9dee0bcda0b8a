from collections import defaultdict
from pathlib import Path

from pydantic import BaseModel, TypeAdapter
from rich.console import Console
from rich.table import Table

from convo.conversation import get_ordered_messages
from convo.environment import DEFAULT_ENVIRONMENT
from convo.fs import read_conversation_file
from convo.models import Role


class RoleTokens(BaseModel):
    role: str
    messages: int
    tokens: int


class TokenReport(BaseModel):
    conversation_id: str
    components: list[RoleTokens]
    total_tokens: int
    max_tokens: int | None = None
    remaining_tokens: int | None = None


def tokens(
    path: Path,
    max_tokens: int | None,
    json_output: bool = False,
) -> None:
    """
    Estimates token usage per role using the default estimator.
    """
    conversation = read_conversation_file(path)
    estimate = DEFAULT_ENVIRONMENT.estimate_tokens

    counts: dict[str, int] = defaultdict(int)
    totals: dict[str, int] = defaultdict(int)
    for message in get_ordered_messages(conversation):
        role = Role(message.role).value
        counts[role] += 1
        totals[role] += estimate(message)

    total_tokens = sum(totals.values())
    report = TokenReport(
        conversation_id=conversation.id,
        components=[RoleTokens(role=r, messages=counts[r], tokens=totals[r]) for r in counts],
        total_tokens=total_tokens,
        max_tokens=max_tokens,
        remaining_tokens=max_tokens - total_tokens if max_tokens is not None else None,
    )

    if json_output:
        print(TypeAdapter(TokenReport).dump_json(report, indent=2).decode("utf-8"))
        return

    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(justify="right")  # Tokens
    table.add_column()  # Role
    table.add_column(style="dim")  # Message count
    for item in report.components:
        table.add_row(f"{item.tokens:,}", item.role, f"({item.messages} message(s))")
    console.print(table)
    console.print("=" * 22)

    total_table = Table(show_header=False, box=None, padding=(0, 2))
    total_table.add_column(justify="right")
    total_table.add_column()
    total_table.add_row(f"{report.total_tokens:,}", "total")
    if report.max_tokens is not None and report.remaining_tokens is not None:
        total_table.add_row(f"{report.max_tokens:,}", "max tokens")
        total_table.add_row(f"{report.remaining_tokens:,}", "remaining tokens")
    console.print(total_table)
