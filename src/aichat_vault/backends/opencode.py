"""OpenCode chat history backend.

Reads chat data from ~/.local/share/opencode/storage/ directory.
Data is organized as: session/ -> message/ -> part/ hierarchy.

- session/<project-id>/<session-id>.json: title, directory and
  time.created/updated (epoch ms).
- message/<session-id>/<message-id>.json: role, time.created, model and error.
- part/<message-id>/<part-id>.json: text, reasoning, tool and step parts.
  Older storage versions have no part/ directories at all.
"""

import json
import logging
from pathlib import Path

from ..config import get_opencode_path
from ..core import (
    AssistantText,
    AssistantThinking,
    CodeBlock,
    ContentBlock,
    InfoMessage,
    JsonBlock,
    MarkdownBlock,
    ParsedMessage,
    Provider,
    SessionDetail,
    SessionInfo,
    SessionMetadata,
    TextBlock,
    ToolResult,
    ToolUse,
    UserMessage,
)
from ..normalize import (
    ModelCounter,
    correlate,
    extract_title,
    json_to_map,
    malformed_info,
    placeholder_title,
    read_json,
    to_iso,
)
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

_NO_TIME = float("inf")


class OpenCodeProvider(ChatProvider):
    """Provider for OpenCode chat history."""

    name = Provider.OPENCODE
    label = "OpenCode"

    def get_base_path(self) -> Path:
        return get_opencode_path()

    def is_available(self) -> bool:
        return (self.get_base_path() / "session").is_dir()

    def list_sessions(self) -> list[SessionInfo]:
        session_dir = self.get_base_path() / "session"
        if not session_dir.is_dir():
            return []

        sessions = []
        for project_dir in sorted(d for d in session_dir.iterdir() if d.is_dir()):
            for ses_file in sorted(project_dir.glob("*.json")):
                info = self._parse_session_file(ses_file)
                if info:
                    sessions.append(info)

        sessions.sort(key=lambda s: s.updated or "", reverse=True)
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        base = self.get_base_path()
        msg_dir = base / "message" / info.session_id
        loaded = []
        models = ModelCounter()

        if msg_dir.is_dir():
            for msg_file in sorted(msg_dir.glob("*.json")):
                try:
                    raw = msg_file.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Failed to read message file %s: %s", msg_file, e)
                    continue
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    data = None
                if not isinstance(data, dict):
                    loaded.append((None, [], raw, msg_file))
                    continue
                model = data.get("model") if isinstance(data.get("model"), dict) else {}
                models.add(model.get("modelID") or data.get("modelID"))
                parts = self._load_parts(base / "part" / str(data.get("id") or msg_file.stem))
                loaded.append((data, parts, raw, msg_file))

        # Unparseable message files sort last
        loaded.sort(key=lambda m: _created_ms(m[0]))

        messages: list[ParsedMessage] = []
        for data, parts, raw, msg_file in loaded:
            messages.extend(self._parse_message(data, parts, raw, msg_file))
        messages = correlate(messages)

        metadata = SessionMetadata(
            cwd=info.project_path,
            created=info.created,
            modified=info.updated,
            models=models.sorted(),
            message_count=len(loaded),
        )
        title = info.title or extract_title(messages, placeholder_title(self.label, info.session_id))
        return SessionDetail(
            session_id=info.session_id,
            title=title,
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_session_file(self, ses_file: Path) -> SessionInfo | None:
        """Parse a session JSON file into a SessionInfo."""
        data = read_json(ses_file)
        if not isinstance(data, dict):
            return None

        time_data = data.get("time") if isinstance(data.get("time"), dict) else {}
        return SessionInfo(
            session_id=str(data.get("id") or ses_file.stem),
            path=ses_file,
            project_path=data.get("directory") or None,
            title=data.get("title") or None,
            created=to_iso(time_data.get("created")),
            updated=to_iso(time_data.get("updated")),
            extra={"project_id": data.get("projectID")},
        )

    def _load_parts(self, part_dir: Path) -> list[dict]:
        if not part_dir.is_dir():
            return []
        parts = []
        for part_file in sorted(part_dir.glob("*.json")):
            part = read_json(part_file)
            if isinstance(part, dict):
                parts.append(part)
        parts.sort(key=_part_start_ms)
        return parts

    def _parse_message(
        self, data: dict | None, parts: list[dict], raw: str, msg_file: Path
    ) -> list[ParsedMessage]:
        timestamp = to_iso(_time_field(data, "created")) or ""

        if data is None:
            return [malformed_info(timestamp, "parse", f"Failed to parse message: {msg_file}")]

        role = data.get("role")
        if role == "user":
            return [self._parse_user_message(parts, raw, timestamp)]
        if role == "assistant":
            return self._parse_assistant_message(data, parts, raw, timestamp)
        return [InfoMessage(timestamp=timestamp, title=str(role), content=JsonBlock(raw))]

    def _parse_user_message(self, parts: list[dict], raw: str, timestamp: str) -> UserMessage:
        text = "\n\n".join(
            p["text"].strip()
            for p in parts
            if p.get("type") == "text" and isinstance(p.get("text"), str) and p["text"].strip()
        )
        content: list[ContentBlock]
        if text:
            content = [TextBlock(text)]
        elif not parts:
            content = [CodeBlock(raw)]
        else:
            content = [TextBlock(f"User message with {len(parts)} part(s)"), CodeBlock(raw)]
        return UserMessage(timestamp=timestamp, content=content)

    def _parse_assistant_message(
        self, data: dict, parts: list[dict], raw: str, timestamp: str
    ) -> list[ParsedMessage]:
        messages: list[ParsedMessage] = []

        for part in parts:
            part_time = part.get("time") if isinstance(part.get("time"), dict) else {}
            part_ts = to_iso(part_time.get("start") or part_time.get("end")) or timestamp
            part_type = part.get("type")
            text = part.get("text").strip() if isinstance(part.get("text"), str) else ""

            if part_type == "text" and text:
                messages.append(AssistantText(timestamp=part_ts, content=[MarkdownBlock(text)]))
            elif part_type == "reasoning" and text:
                messages.append(AssistantThinking(timestamp=part_ts, thinking=text))
            elif part_type == "tool":
                messages.append(self._parse_tool_part(part, part_ts))
            # step-start, step-finish and unknown parts are lifecycle markers

        if messages:
            return messages

        error = data.get("error")
        if isinstance(error, dict) and error:
            err_data = error.get("data") if isinstance(error.get("data"), dict) else {}
            return [InfoMessage(
                timestamp=timestamp,
                title="error",
                subtitle=error.get("name"),
                content=TextBlock(err_data.get("message") or raw),
                style="error",
            )]
        return [AssistantText(
            timestamp=timestamp,
            content=[CodeBlock(f"Assistant message with 0 parts\n{raw}")],
        )]

    def _parse_tool_part(self, part: dict, timestamp: str) -> ToolUse:
        state = part.get("state") if isinstance(part.get("state"), dict) else {}
        status = state.get("status")
        call_id = part.get("callID")

        results = []
        if status in ("completed", "error"):
            output = _format_tool_output(state.get("error") if status == "error" else state.get("output"))
            results.append(ToolResult(
                output=output[0].code if output else json.dumps([]),
                is_error=status == "error",
                tool_call_id=call_id,
            ))

        return ToolUse(
            timestamp=timestamp,
            tool_name=part.get("tool") or "tool",
            tool_call_id=call_id,
            input=json_to_map(state.get("input")),
            results=results,
        )


def _time_field(data: dict | None, key: str):
    if not data or not isinstance(data.get("time"), dict):
        return None
    return data["time"].get(key)


def _created_ms(data: dict | None) -> float:
    value = _time_field(data, "created")
    return value if isinstance(value, (int, float)) and value else _NO_TIME


def _part_start_ms(part: dict) -> float:
    time_data = part.get("time") if isinstance(part.get("time"), dict) else {}
    value = time_data.get("start") or time_data.get("end")
    return value if isinstance(value, (int, float)) else _NO_TIME


def _format_tool_output(output) -> list[CodeBlock]:
    if not output:
        return []
    if isinstance(output, str):
        return [CodeBlock(output)]
    if isinstance(output, dict):
        if isinstance(output.get("output"), str):
            return [CodeBlock(output["output"])]
        return [CodeBlock(json.dumps(output, indent=2))]
    return [CodeBlock(str(output))]
