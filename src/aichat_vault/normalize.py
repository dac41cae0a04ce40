"""Helpers shared by every normalizer, including the tool-call correlator."""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .config import TITLE_MAX_CHARS
from .core import (
    CodeBlock,
    ContentBlock,
    DiffBlock,
    HtmlBlock,
    InfoMessage,
    JsonBlock,
    MarkdownBlock,
    ParsedMessage,
    TextBlock,
    ToolResult,
    ToolResultMessage,
    ToolUse,
    UserMessage,
    content_to_dict,
)

logger = logging.getLogger(__name__)

# Epoch values at or above this are milliseconds, below it seconds.
_MS_THRESHOLD = 10**12


# ── Correlation ──────────────────────────────────────────────────


def reduce_result(result: ToolResultMessage) -> ToolResult:
    """Reduce a tool_result message to the inline form carried by a ToolUse."""
    if result.output and isinstance(result.output[0], CodeBlock):
        output = result.output[0].code
    else:
        output = json.dumps([content_to_dict(b) for b in result.output])
    return ToolResult(output=output, is_error=result.is_error, tool_call_id=result.tool_call_id)


def correlate(messages: list[ParsedMessage]) -> list[ParsedMessage]:
    """Attach tool results to the tool uses that issued them.

    Matching is by call identifier only. A ToolUse with a matching id gets its
    ``results`` replaced by every result bearing that id, and those
    ToolResultMessages are dropped from the stream. Results without an id, or
    whose id no ToolUse carries, stay where they are. Order is preserved and
    the input list is not modified.
    """
    results_by_id: dict[str, list[ToolResultMessage]] = {}
    for msg in messages:
        if isinstance(msg, ToolResultMessage) and msg.tool_call_id:
            results_by_id.setdefault(msg.tool_call_id, []).append(msg)

    use_ids = {
        msg.tool_call_id
        for msg in messages
        if isinstance(msg, ToolUse) and msg.tool_call_id
    }

    correlated: list[ParsedMessage] = []
    for msg in messages:
        if isinstance(msg, ToolUse):
            matched = results_by_id.get(msg.tool_call_id) if msg.tool_call_id else None
            if matched:
                msg = replace(msg, results=[reduce_result(r) for r in matched])
            correlated.append(msg)
        elif isinstance(msg, ToolResultMessage):
            if msg.tool_call_id and msg.tool_call_id in use_ids:
                continue
            correlated.append(msg)
        else:
            correlated.append(msg)
    return correlated


# ── Titles and models ────────────────────────────────────────────


def truncate_title(text: str) -> str:
    text = text.strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def placeholder_title(label: str, session_id: str) -> str:
    return f"{label} Session {session_id[:8]}"


def extract_title(messages: list[ParsedMessage], fallback: str) -> str:
    """Title from the first user message with text: its text blocks, else its markdown blocks."""
    for msg in messages:
        if not isinstance(msg, UserMessage):
            continue
        text = " ".join(b.text for b in msg.content if isinstance(b, TextBlock))
        if not text.strip():
            text = " ".join(b.markdown for b in msg.content if isinstance(b, MarkdownBlock))
        title = truncate_title(text)
        if title:
            return title
    return fallback


class ModelCounter:
    """Counts model identifiers in the order they are first seen."""

    def __init__(self):
        self._counts: dict[str, int] = {}

    def add(self, model: str | None) -> None:
        if model:
            self._counts[model] = self._counts.get(model, 0) + 1

    def sorted(self) -> list[tuple[str, int]]:
        # sorted() is stable, so ties keep first-seen order
        return sorted(self._counts.items(), key=lambda item: -item[1])


# ── Timestamps ───────────────────────────────────────────────────


def _format(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_iso(value: Any) -> str | None:
    """Normalize an epoch (seconds or milliseconds) or ISO string to ISO 8601 UTC.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _MS_THRESHOLD else value
        try:
            return _format(datetime.fromtimestamp(seconds, tz=timezone.utc))
        except (ValueError, OSError, OverflowError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return to_iso(int(text))
        try:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return _format(dt)
    return None


def now_iso() -> str:
    return _format(datetime.now(timezone.utc))


def file_times(path: Path) -> tuple[str, str]:
    """Return (created, updated) for a file from its stat times."""
    try:
        st = path.stat()
    except OSError:
        now = now_iso()
        return now, now
    born = getattr(st, "st_birthtime", None) or st.st_ctime
    return to_iso(born) or now_iso(), to_iso(st.st_mtime) or now_iso()


# ── Content coercion ─────────────────────────────────────────────


def _block_from_item(item: dict) -> ContentBlock | None:
    item_type = item.get("type")
    if item_type == "text" and isinstance(item.get("text"), str):
        return TextBlock(item["text"])
    if item_type == "code" or (item.get("language") and "code" in item):
        return CodeBlock(str(item.get("code") or item.get("text") or ""), item.get("language"))
    if item_type == "markdown":
        return MarkdownBlock(str(item.get("markdown") or item.get("text") or ""))
    if item_type == "html" and isinstance(item.get("html"), str):
        return HtmlBlock(item["html"])
    if item_type == "diff":
        return DiffBlock(
            str(item.get("old_text") or item.get("oldText") or ""),
            str(item.get("new_text") or item.get("newText") or ""),
            item.get("file_path") or item.get("filePath"),
        )
    if item_type == "json":
        raw = item.get("json")
        return JsonBlock(raw if isinstance(raw, str) else json.dumps(raw))
    return None


def coerce_content(payload: Any) -> list[ContentBlock]:
    """Turn an arbitrary message payload into content blocks.

    Strings become one text block, arrays are mapped item by item by their
    declared type, anything unrecognised is kept whole as a json block. An
    empty payload yields an empty list so the caller can flag it.
    """
    if payload is None:
        return []
    if isinstance(payload, str):
        return [TextBlock(payload)] if payload.strip() else []
    if isinstance(payload, list):
        blocks: list[ContentBlock] = []
        for item in payload:
            if isinstance(item, str):
                if item.strip():
                    blocks.append(TextBlock(item))
            elif isinstance(item, dict):
                blocks.append(_block_from_item(item) or JsonBlock(json.dumps(item)))
            elif item is not None:
                blocks.append(JsonBlock(json.dumps(item)))
        return blocks
    if isinstance(payload, dict):
        if not payload:
            return []
        return [_block_from_item(payload) or JsonBlock(json.dumps(payload))]
    return [TextBlock(str(payload))]


def malformed_info(timestamp: str, subtitle: str, detail: str) -> InfoMessage:
    """An error-styled info message standing in for input that could not be parsed."""
    return InfoMessage(
        timestamp=timestamp,
        title="error",
        subtitle=subtitle,
        content=TextBlock(detail),
        style="error",
    )


def json_to_map(value: Any) -> dict[str, str]:
    """Flatten a tool input object to string values."""
    if not isinstance(value, dict):
        return {}
    return {
        str(key): val if isinstance(val, str) else json.dumps(val)
        for key, val in value.items()
    }


# ── File readers ─────────────────────────────────────────────────


def read_json(path: Path) -> Any:
    """Load a JSON file, returning None when it is missing or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read %s: %s", path, e)
        return None


def iter_jsonl(text: str) -> Iterator[tuple[int, dict | None, str]]:
    """Yield (line number, parsed object or None, stripped line) for JSON-looking lines."""
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            yield line_num, None, line
            continue
        yield line_num, entry if isinstance(entry, dict) else None, line
