import logging
from collections.abc import Sequence
from pathlib import Path
from sys import exit
from typing import Annotated, Any, final, override

import typer
from typer.core import TyperGroup

from convo.exceptions import ConvoError

app: typer.Typer


@final
class ErrorHandlingGroup(TyperGroup):
    @override
    def main(  # pyright: ignore[reportAny]
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        windows_expand_args: bool = True,
        **extra: Any,  # pyright: ignore[reportAny, reportExplicitAny]
    ) -> Any:  # pyright: ignore[reportExplicitAny]
        try:
            return super().main(args, prog_name, complete_var, standalone_mode, windows_expand_args, **extra)  #  pyright: ignore[reportAny]
        except ConvoError as e:
            typer.secho(f"Error: {e.message}", err=True, fg=typer.colors.RED)
            exit(e.exit_code)
        except Exception as e:
            typer.secho("Unexpected Internal Error", err=True, fg=typer.colors.RED)
            typer.echo(str(e), err=True)
            exit(1)


app = typer.Typer(cls=ErrorHandlingGroup, no_args_is_help=True)

ConversationFile = Annotated[
    Path,
    typer.Argument(help="Path to a conversation JSON file.", dir_okay=False),
]
OutputFile = Annotated[
    Path | None,
    typer.Option("--output", "-o", help="Write the result here instead of overwriting the input file."),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    """
    Inspect and edit LLM conversation files.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("new")
def new(
    path: ConversationFile,
    title: Annotated[str | None, typer.Option(help="Title of the conversation.")] = None,
    system: Annotated[str | None, typer.Option(help="Initial system message.")] = None,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file.")] = False,
) -> None:
    """
    Create a new, empty conversation file.
    """
    from convo.commands import new

    new.new(path, title, system, force)


@app.command("log")
def log(
    path: ConversationFile,
    show_all: Annotated[bool, typer.Option("--all", help="Include hidden messages.")] = False,
) -> None:
    """
    Display the messages of a conversation.
    """
    from convo.commands import log

    log.log(path, show_all)


@app.command("validate")
def validate(path: ConversationFile) -> None:
    """
    Check a conversation for integrity issues. Exits with status 1 if any are found.
    """
    from convo.commands import validate

    validate.validate(path)


@app.command("tokens")
def tokens(
    path: ConversationFile,
    max_tokens: Annotated[
        int | None,
        typer.Option("--max-tokens", envvar="CONVO_MAX_TOKENS", help="Token budget to compare against."),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output the report as JSON.")] = False,
) -> None:
    """
    Show estimated token usage per role.
    """
    from convo.commands import tokens

    tokens.tokens(path, max_tokens, json_output)


@app.command("truncate")
def truncate(
    path: ConversationFile,
    max_tokens: Annotated[
        int,
        typer.Option("--max-tokens", envvar="CONVO_MAX_TOKENS", help="Token budget the result must fit in."),
    ],
    preserve_last: Annotated[
        int,
        typer.Option("--preserve-last", min=0, help="Number of most recent non-system messages to always keep."),
    ] = 0,
    preserve_system: Annotated[
        bool,
        typer.Option("--preserve-system/--no-preserve-system", help="Always keep system messages."),
    ] = True,
    output: OutputFile = None,
) -> None:
    """
    Drop the oldest messages until the conversation fits in the token budget.
    """
    from convo.commands import truncate

    truncate.truncate(path, max_tokens, preserve_last, preserve_system, output)


@app.command("collapse-system")
def collapse_system(path: ConversationFile, output: OutputFile = None) -> None:
    """
    Merge all system messages into the first one.
    """
    from convo.commands import collapse_system

    collapse_system.collapse_system(path, output)


if __name__ == "__main__":
    app()
