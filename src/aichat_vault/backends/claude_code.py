"""Claude Code chat history backend.

Reads chat data from ~/.claude/projects/. Each project is a directory named
after its sanitized path (separators replaced by "-") holding one
append-only <session-id>.jsonl file per session.

JSONL entry types:
- "user": User prompts. Content is a string or an array of text and
  tool_result blocks. A line holding only tool_result blocks becomes a
  tool_result message so it can be correlated with its tool_use.
- "assistant": Text, thinking and tool_use blocks. A line with any tool_use
  becomes one ToolUse (first tool wins); thinking-only lines become thinking.
- "tool_use", "tool_result", "thinking": Standalone variants of the above.
- "system": turn_duration becomes a "duration" info, anything else "system".
- "summary": Compacted-context summaries, shown as info.
- Lines flagged isMeta are skipped; lines without a timestamp are skipped.
"""

import json
import logging
import re
from pathlib import Path

from ..config import get_claude_code_path
from ..core import (
    AssistantText,
    AssistantThinking,
    CodeBlock,
    ContentBlock,
    InfoMessage,
    MarkdownBlock,
    ParsedMessage,
    Provider,
    SessionDetail,
    SessionInfo,
    SessionMetadata,
    TextBlock,
    ToolResultMessage,
    ToolUse,
    UserMessage,
)
from ..normalize import (
    ModelCounter,
    correlate,
    extract_title,
    file_times,
    iter_jsonl,
    json_to_map,
    placeholder_title,
)
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

_LOCAL_COMMAND_STDOUT = re.compile(r"^<local-command-stdout>.*</local-command-stdout>$", re.S)
_COMMAND_NAME = re.compile(r"<command-name>([^<]+)</command-name>")


class ClaudeCodeProvider(ChatProvider):
    """Provider for Claude Code chat history."""

    name = Provider.CLAUDE_CODE
    label = "Claude"

    def get_base_path(self) -> Path:
        return get_claude_code_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_sessions(self) -> list[SessionInfo]:
        base = self.get_base_path()
        if not base.is_dir():
            return []

        sessions = []
        for project_dir in sorted(d for d in base.iterdir() if d.is_dir()):
            # Derive from folder name: -Users-farhaj-dev-foo -> /Users/farhaj/dev/foo
            dir_path = project_dir.name.replace("-", "/")
            for jsonl_file in sorted(project_dir.glob("*.jsonl")):
                created, updated = file_times(jsonl_file)
                sessions.append(SessionInfo(
                    session_id=jsonl_file.stem,
                    path=jsonl_file,
                    project_path=dir_path,
                    created=created,
                    updated=updated,
                ))
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        try:
            text = info.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read JSONL %s: %s", info.path, e)
            return None

        messages, metadata = self._parse_jsonl(text, info.path)
        fallback = placeholder_title(self.label, info.session_id)
        return SessionDetail(
            session_id=info.session_id,
            title=extract_title(messages, fallback),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return detail.metadata.cwd or info.project_path

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_jsonl(self, text: str, path: Path) -> tuple[list[ParsedMessage], SessionMetadata]:
        """Parse a session's JSONL text into correlated messages and metadata."""
        messages: list[ParsedMessage] = []
        metadata = SessionMetadata()
        models = ModelCounter()
        seen_header = False

        for line_num, entry, raw in iter_jsonl(text):
            if entry is None:
                logger.debug("Bad JSON at %s:%d", path, line_num)
                continue

            entry_type = entry.get("type")
            timestamp = entry.get("timestamp") or (entry.get("snapshot") or {}).get("timestamp")
            if timestamp:
                metadata.created = metadata.created or timestamp
                metadata.modified = timestamp

            if not seen_header and entry_type in ("user", "assistant"):
                seen_header = True
                metadata.version = entry.get("version")
                metadata.git_branch = (entry.get("gitBranch") or "").strip() or None
                metadata.cwd = entry.get("cwd")

            if entry.get("isMeta"):
                continue

            message_obj = entry.get("message")
            if not isinstance(message_obj, dict):
                message_obj = {}
            models.add(message_obj.get("model"))

            if not timestamp:
                continue

            msg = self._entry_to_message(entry_type, message_obj, entry, raw, timestamp)
            if msg is not None:
                messages.append(msg)

        metadata.message_count = len(messages)
        metadata.models = models.sorted()
        return correlate(messages), metadata

    def _entry_to_message(
        self, entry_type: str | None, message_obj: dict, entry: dict, raw: str, timestamp: str
    ) -> ParsedMessage | None:
        if not entry_type:
            return InfoMessage(
                timestamp=timestamp,
                title="error",
                subtitle="schema",
                content=TextBlock(f"Schema Error: Missing 'type' field\n{raw}"),
                style="error",
            )
        if entry_type == "user":
            return self._parse_user_entry(message_obj, timestamp)
        if entry_type == "assistant":
            return self._parse_assistant_entry(message_obj, timestamp)
        if entry_type == "tool_use":
            return self._parse_tool_use_entry(message_obj, timestamp)
        if entry_type == "tool_result":
            return ToolResultMessage(
                timestamp=timestamp,
                tool_call_id=entry.get("tool_use_id") or message_obj.get("tool_use_id"),
                output=[CodeBlock(_tool_result_text(entry.get("content") or message_obj.get("content")))],
                is_error=bool(entry.get("is_error", False)),
            )
        if entry_type == "thinking":
            parts = [
                item["thinking"]
                for item in _content_list(message_obj)
                if item.get("type") == "thinking" and item.get("thinking")
            ]
            return AssistantThinking(
                timestamp=timestamp,
                thinking="\n\n".join(parts) or "[Thinking message with no parsable content]",
            )
        if entry_type == "system":
            return self._parse_system_entry(message_obj, entry, raw, timestamp)
        if entry_type == "summary":
            return InfoMessage(
                timestamp=timestamp,
                title="summary",
                content=MarkdownBlock(entry.get("summary") or "Session summary"),
            )
        # file-history-snapshot, progress, queue-operation and unknown kinds
        return None

    def _parse_user_entry(self, message_obj: dict, timestamp: str) -> ParsedMessage | None:
        """Parse a user entry.

        Slash-command echoes become "command" info messages and empty
        command-output placeholders are dropped, so neither can become the
        session title.
        """
        content = message_obj.get("content")

        if isinstance(content, str):
            if _LOCAL_COMMAND_STDOUT.match(content.strip()):
                return None
            match = _COMMAND_NAME.search(content)
            if match:
                return InfoMessage(
                    timestamp=timestamp,
                    title="command",
                    content=TextBlock(match.group(1).lstrip("/")),
                )
            return UserMessage(timestamp=timestamp, content=[TextBlock(content)])

        blocks: list[ContentBlock] = []
        has_text = False
        tool_result_id = None
        for item in _content_list(message_obj):
            item_type = item.get("type")
            if item_type == "text":
                has_text = True
                blocks.append(TextBlock(item.get("text") or ""))
            elif item_type == "tool_result":
                tool_result_id = item.get("tool_use_id")
                output = _tool_result_text(item.get("content"))
                if output:
                    blocks.append(CodeBlock(output))

        if tool_result_id is not None and not has_text:
            return ToolResultMessage(
                timestamp=timestamp,
                tool_call_id=tool_result_id,
                output=blocks,
                is_error=False,
            )
        if not blocks:
            blocks.append(CodeBlock("[User Message - No parsable content]"))
        return UserMessage(timestamp=timestamp, content=blocks)

    def _parse_assistant_entry(self, message_obj: dict, timestamp: str) -> ParsedMessage:
        items = _content_list(message_obj)
        blocks: list[ContentBlock] = []
        thinking = None
        has_text = False
        first_tool = None

        for item in items:
            item_type = item.get("type")
            if item_type == "text":
                has_text = True
                if item.get("text"):
                    blocks.append(MarkdownBlock(item["text"]))
            elif item_type == "thinking":
                thinking = item.get("thinking")
                if thinking:
                    blocks.append(MarkdownBlock(thinking))
            elif item_type in ("tool_use", "server_tool_use") and first_tool is None:
                first_tool = item

        if first_tool is not None:
            return ToolUse(
                timestamp=timestamp,
                tool_name=first_tool.get("name") or "tool",
                tool_call_id=first_tool.get("id"),
                input=json_to_map(first_tool.get("input")),
            )

        if thinking and len(blocks) == 1 and not has_text:
            return AssistantThinking(timestamp=timestamp, thinking=thinking)

        if not blocks:
            raw = json.dumps(message_obj)[:1000]
            blocks.append(CodeBlock(f"[Assistant Message - No parsable content] {raw}"))
        return AssistantText(timestamp=timestamp, content=blocks)

    def _parse_tool_use_entry(self, message_obj: dict, timestamp: str) -> ToolUse:
        tool_name, tool_call_id, tool_input = "tool", None, {}
        for item in _content_list(message_obj):
            if item.get("type") == "tool_use":
                tool_name = item.get("name") or "tool"
                tool_call_id = item.get("id")
                tool_input.update(json_to_map(item.get("input")))
        return ToolUse(
            timestamp=timestamp,
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            input=tool_input,
        )

    def _parse_system_entry(
        self, message_obj: dict, entry: dict, raw: str, timestamp: str
    ) -> InfoMessage:
        subtype = entry.get("subtype")
        if subtype == "turn_duration":
            duration_ms = entry.get("durationMs")
            return InfoMessage(
                timestamp=timestamp,
                title="duration",
                subtitle="turn_duration",
                content=TextBlock(
                    _format_duration(duration_ms)
                    if isinstance(duration_ms, (int, float)) and duration_ms
                    else raw
                ),
            )
        text = message_obj.get("content") or entry.get("content")
        return InfoMessage(
            timestamp=timestamp,
            title="system",
            subtitle=subtype,
            content=TextBlock(text if isinstance(text, str) and text else raw),
        )


def _content_list(message_obj: dict) -> list[dict]:
    content = message_obj.get("content")
    if not isinstance(content, list):
        return []
    return [item for item in content if isinstance(item, dict)]


def _tool_result_text(content) -> str:
    """Flatten tool_result content: strings as-is, arrays by their text items."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(item.get("text") or "")
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        )
    return json.dumps(content)


def _format_duration(ms: int) -> str:
    total = int(ms) // 1000
    hours, minutes, seconds = total // 3600, (total % 3600) // 60, total % 60
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)
