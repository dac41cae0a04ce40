"""Turn parsed messages into display cards and plain text for indexing."""

import re

from .core import (
    AssistantText,
    AssistantThinking,
    CodeBlock,
    ContentBlock,
    DiffBlock,
    HtmlBlock,
    InfoMessage,
    JsonBlock,
    MarkdownBlock,
    ParsedMessage,
    RenderableMessage,
    TextBlock,
    ToolResultMessage,
    ToolUse,
    UserMessage,
)

_JSON_PUNCTUATION = re.compile(r'[{}\[\]",:]')
_HTML_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def parameter_value(params: dict[str, str], *keys: str) -> str | None:
    """Look up a tool parameter by normalized name.

    Keys are compared lowercased with underscores removed, so ``oldstring``
    matches ``old_string`` and ``oldString``. The first key that matches wins.
    """
    for key in keys:
        if key in params:
            return params[key]
        for name, value in params.items():
            if name.lower().replace("_", "") == key:
                return value
    return None


def strip_working_directory(path: str, cwd: str | None) -> str:
    if not cwd:
        return path
    root = cwd.rstrip("/")
    if path.startswith(root):
        return path[len(root):].lstrip("/")
    return path


def format_tool_input(
    tool_input: dict[str, str], tool_name: str, cwd: str | None = None
) -> list[ContentBlock]:
    """Render tool parameters as content blocks.

    Edit-like tools carrying both an old and a new string become a diff,
    preceded by the (cwd-relative) file path when one is given. Every other
    tool lists each parameter as a text label followed by its value as code.
    """
    if "edit" in tool_name.lower():
        old = parameter_value(tool_input, "oldstring", "oldstr")
        new = parameter_value(tool_input, "newstring", "newstr")
        if old is not None and new is not None:
            blocks: list[ContentBlock] = []
            file_path = parameter_value(tool_input, "filepath", "path")
            if file_path is not None:
                blocks.append(TextBlock("file_path:"))
                blocks.append(CodeBlock(strip_working_directory(file_path, cwd)))
            blocks.append(DiffBlock(old, new, file_path))
            return blocks

    blocks = []
    for key, value in tool_input.items():
        blocks.append(TextBlock(key))
        blocks.append(CodeBlock(value))
    return blocks


def to_card(
    message: ParsedMessage,
    session_id: int,
    sequence: int,
    created_at: str,
    cwd: str | None = None,
) -> RenderableMessage:
    """Classify one parsed message as a renderable card."""

    def card(card_type, title, content, subtitle=None, is_error=False):
        return RenderableMessage(
            session_id=session_id,
            sequence=sequence,
            card_type=card_type,
            title=title,
            subtitle=subtitle,
            content=content,
            timestamp=message.timestamp,
            created_at=created_at,
            is_error=is_error,
        )

    if isinstance(message, UserMessage):
        return card("user", "user", list(message.content))
    if isinstance(message, AssistantText):
        return card("assistant", "text", list(message.content))
    if isinstance(message, AssistantThinking):
        return card("thinking", "thinking", [TextBlock(message.thinking)])
    if isinstance(message, ToolUse):
        content = format_tool_input(message.input, message.tool_name, cwd)
        for result in message.results:
            content.append(CodeBlock(result.output))
        return card(
            "tool-use",
            "tool_use",
            content,
            subtitle=message.tool_name,
            is_error=any(r.is_error for r in message.results),
        )
    if isinstance(message, ToolResultMessage):
        subtitle = message.tool_call_id[:24] if message.tool_call_id else None
        return card(
            "tool-result", "tool_result", list(message.output), subtitle, message.is_error
        )
    if isinstance(message, InfoMessage):
        is_error = message.style == "error"
        content = [message.content] if message.content else [TextBlock(f"[{message.title}]")]
        return card("error" if is_error else "info", message.title, content, message.subtitle, is_error)
    raise TypeError(f"Unknown message: {message!r}")


def extract_text(blocks: list[ContentBlock]) -> str:
    """Plain searchable text of a card's content, whitespace collapsed."""
    parts = []
    for block in blocks:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, CodeBlock):
            parts.append(block.code)
        elif isinstance(block, MarkdownBlock):
            parts.append(block.markdown)
        elif isinstance(block, JsonBlock):
            parts.append(_JSON_PUNCTUATION.sub(" ", block.json))
        elif isinstance(block, DiffBlock):
            parts.extend(t for t in (block.old_text, block.new_text) if t)
        elif isinstance(block, HtmlBlock):
            parts.append(_HTML_TAG.sub(" ", block.html))
        else:
            raise TypeError(f"Unknown content block: {block!r}")
    return _WHITESPACE.sub(" ", " ".join(parts)).strip()
