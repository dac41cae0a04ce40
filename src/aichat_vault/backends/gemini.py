"""Gemini CLI chat history backend.

Reads ~/.gemini/tmp/<project-hash>/. Each hash directory holds a
``.project_root`` file naming the project path and a ``chats/`` directory of
session-*.json documents (sessionId, startTime, lastUpdated, messages).

Message types: "user", "gemini" (thoughts, then toolCalls, then text),
"error" and "info". Tool calls carry their results inline.
"""

import json
import logging
from pathlib import Path

from ..config import get_gemini_path
from ..core import (
    AssistantText,
    AssistantThinking,
    DiffBlock,
    InfoMessage,
    MarkdownBlock,
    ParsedMessage,
    Provider,
    SessionDetail,
    SessionInfo,
    SessionMetadata,
    TextBlock,
    ToolResult,
    ToolResultMessage,
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


class GeminiProvider(ChatProvider):
    """Provider for Gemini CLI sessions."""

    name = Provider.GEMINI
    label = "Gemini"

    def get_base_path(self) -> Path:
        return get_gemini_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_sessions(self) -> list[SessionInfo]:
        base = self.get_base_path()
        if not base.is_dir():
            return []

        sessions = []
        for project_dir in sorted(d for d in base.iterdir() if d.is_dir()):
            project_root = _read_project_root(project_dir)
            chats_dir = project_dir / "chats"
            if not project_root or not chats_dir.is_dir():
                continue

            for chat_file in sorted(chats_dir.glob("session-*.json")):
                data = read_json(chat_file)
                if not isinstance(data, dict):
                    continue
                sessions.append(SessionInfo(
                    session_id=str(data.get("sessionId") or chat_file.stem),
                    path=chat_file,
                    project_path=project_root,
                    created=to_iso(data.get("startTime")),
                    updated=to_iso(data.get("lastUpdated")),
                    extra={"project_hash": data.get("projectHash") or project_dir.name},
                ))

        sessions.sort(key=lambda s: s.updated or "", reverse=True)
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        data = read_json(info.path)
        if not isinstance(data, dict):
            return None

        fallback_ts = to_iso(data.get("startTime")) or info.created or ""
        messages: list[ParsedMessage] = []
        models = ModelCounter()

        for msg in data.get("messages") or []:
            if not isinstance(msg, dict):
                continue
            models.add(msg.get("model"))
            timestamp = to_iso(msg.get("timestamp")) or fallback_ts
            messages.extend(self._parse_message(msg, timestamp))

        messages = correlate(messages)
        session_id = str(data.get("sessionId") or info.session_id)
        metadata = SessionMetadata(
            models=models.sorted(),
            created=to_iso(data.get("startTime")),
            modified=to_iso(data.get("lastUpdated")),
            message_count=len(messages),
        )
        return SessionDetail(
            session_id=session_id,
            title=extract_title(messages, placeholder_title(self.label, session_id)),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_message(self, msg: dict, timestamp: str) -> list[ParsedMessage]:
        msg_type = msg.get("type")
        text = _content_text(msg.get("content"))

        if msg_type == "user":
            if not text.strip():
                return [malformed_info(timestamp, "parse", json.dumps(msg.get("content")))]
            return [UserMessage(timestamp=timestamp, content=[TextBlock(text)])]

        if msg_type == "gemini":
            messages: list[ParsedMessage] = []
            for thought in msg.get("thoughts") or []:
                if isinstance(thought, dict):
                    messages.append(AssistantThinking(
                        timestamp=to_iso(thought.get("timestamp")) or timestamp,
                        thinking=f"[{thought.get('subject', '')}]\n{thought.get('description', '')}",
                    ))
            for call in msg.get("toolCalls") or []:
                if isinstance(call, dict):
                    messages.extend(self._parse_tool_call(call, timestamp))
            if text.strip():
                messages.append(AssistantText(timestamp=timestamp, content=[MarkdownBlock(text)]))
            return messages

        if msg_type == "error":
            return [InfoMessage(timestamp=timestamp, title="error", content=TextBlock(text), style="error")]

        if msg_type == "info":
            return [InfoMessage(timestamp=timestamp, title="info", content=TextBlock(text))]

        return []

    def _parse_tool_call(self, call: dict, timestamp: str) -> list[ParsedMessage]:
        """A tool use with its results inline.

        Diff-looking results are also emitted as a standalone tool_result
        carrying a DiffBlock so the change renders as a diff.
        """
        call_id = call.get("id")
        tool_name = call.get("displayName") or call.get("name") or "tool"
        is_error = call.get("status") == "error"
        display = call.get("resultDisplay") if isinstance(call.get("resultDisplay"), dict) else {}

        outputs = []
        for result in call.get("result") or []:
            function_response = result.get("functionResponse") if isinstance(result, dict) else None
            if not isinstance(function_response, dict):
                continue
            response = function_response.get("response")
            if isinstance(response, dict) and "output" in response:
                output = response["output"]
                outputs.append((output if isinstance(output, str) else json.dumps(output, indent=2), is_error))
        if display.get("fileDiff"):
            outputs.append((str(display["fileDiff"]), False))

        messages: list[ParsedMessage] = [ToolUse(
            timestamp=timestamp,
            tool_name=tool_name,
            tool_call_id=call_id,
            input=json_to_map(call.get("args")),
            results=[ToolResult(output=o, is_error=e, tool_call_id=call_id) for o, e in outputs],
        )]
        for output, error in outputs:
            if "---" in output and "+++" in output:
                messages.append(ToolResultMessage(
                    timestamp=timestamp,
                    tool_call_id=None,
                    tool_name=tool_name,
                    output=[DiffBlock("", output, display.get("filePath"))],
                    is_error=error,
                ))
        return messages


def _read_project_root(project_dir: Path) -> str | None:
    try:
        return (project_dir / ".project_root").read_text(encoding="utf-8").strip() or None
    except (OSError, UnicodeDecodeError):
        return None


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(str(c.get("text") or "") for c in content if isinstance(c, dict))
    return ""
