from pathlib import Path

from convo.context import estimate_conversation_tokens, truncate_to_token_limit
from convo.fs import read_conversation_file, write_conversation_file


def truncate(
    path: Path,
    max_tokens: int,
    preserve_last: int,
    preserve_system: bool,
    output: Path | None,
) -> None:
    conversation = read_conversation_file(path)
    truncated = truncate_to_token_limit(
        conversation,
        max_tokens,
        preserve_system_messages=preserve_system,
        preserve_last_n=preserve_last,
    )

    if truncated is conversation:
        print(f"Conversation already fits in {max_tokens:,} tokens.")
        return

    target = output or path
    write_conversation_file(target, truncated)
    print(
        f"Kept {len(truncated.ids)} of {len(conversation.ids)} message(s) "
        + f"(~{estimate_conversation_tokens(truncated):,} tokens), written to {target}"
    )
