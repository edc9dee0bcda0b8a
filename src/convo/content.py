from collections.abc import Iterable

from convo.models import Content, ContentPart, ImagePart, Message, TextPart


def normalize_content(content: str | ContentPart | Iterable[ContentPart]) -> Content:
    """
    Normalizes content to either a string or a tuple of parts.
    A single part is wrapped in a tuple.
    """
    match content:
        case str():
            return content
        case TextPart() | ImagePart():
            return (content,)
        case _:
            return tuple(content)


def content_parts(content: Content) -> tuple[ContentPart, ...]:
    if isinstance(content, str):
        return (TextPart(text=content),) if content else ()
    return content


def message_parts(message: Message) -> tuple[ContentPart, ...]:
    return content_parts(message.content)


def content_text(content: Content, joiner: str = "\n\n") -> str:
    """
    Text of the content; non-text parts are dropped.
    """
    if isinstance(content, str):
        return content
    return joiner.join(part.text for part in content if isinstance(part, TextPart))


def message_text(message: Message, joiner: str = "\n\n") -> str:
    return content_text(message.content, joiner)


def message_has_images(message: Message) -> bool:
    return any(isinstance(p, ImagePart) for p in message_parts(message))


def message_to_string(message: Message) -> str:
    """
    Renders the message as text, with images as markdown image syntax.
    """
    if isinstance(message.content, str):
        return message.content

    rendered: list[str] = []
    for part in message.content:
        match part:
            case TextPart(text=text):
                rendered.append(text)
            case ImagePart(url=url, text=caption):
                rendered.append(f"![{caption or ''}]({url})")
    return "\n\n".join(rendered)
