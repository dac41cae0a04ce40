"""Codex chat history backend.

Codex writes one rollout file per session into dated folders:
<root>/YYYY/MM/DD/rollout-<timestamp>-<uuid>.jsonl. Roots are the standalone
CLI (~/.codex/sessions) and each JetBrains IDE cache
(~/.cache/JetBrains/<IDE>/aia/codex/sessions). Only the last 30 days are
scanned; when a session id appears more than once the newest file wins.

JSONL entry types:
- "session_meta": cwd, cli_version and git.branch.
- "response_item": payload types message, function_call,
  function_call_output, custom_tool_call, custom_tool_call_output and
  reasoning.
- "turn_context": payload.model, counted once per turn.
"""

import json
import logging
import re
from datetime import date, timedelta
from pathlib import Path

from ..config import CODEX_MAX_DAYS, get_codex_paths
from ..core import (
    AssistantText,
    AssistantThinking,
    CodeBlock,
    ContentBlock,
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

_SESSION_UUID = re.compile(
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$", re.I
)

# Injected context that Codex sends as user input
_SYSTEM_MARKERS = ("<permissions instructions>", "<environment_context>", "# AGENTS.md instructions")

_CUSTOM_INPUT_MAX_CHARS = 2000


class CodexProvider(ChatProvider):
    """Provider for Codex CLI and JetBrains Codex sessions."""

    name = Provider.CODEX
    label = "Codex"

    def get_base_paths(self) -> list[Path]:
        return get_codex_paths()

    def get_base_path(self) -> Path:
        return self.get_base_paths()[-1]

    def is_available(self) -> bool:
        return any(root.is_dir() for root in self.get_base_paths())

    def list_sessions(self) -> list[SessionInfo]:
        newest: dict[str, tuple[float, Path]] = {}
        for day_dir in self._recent_day_dirs():
            for jsonl_file in day_dir.glob("rollout-*.jsonl"):
                session_id = extract_session_id(jsonl_file)
                if not session_id:
                    continue
                try:
                    mtime = jsonl_file.stat().st_mtime
                except OSError:
                    continue
                if session_id not in newest or mtime > newest[session_id][0]:
                    newest[session_id] = (mtime, jsonl_file)

        sessions = []
        for session_id, (_, jsonl_file) in sorted(
            newest.items(), key=lambda item: item[1][0], reverse=True
        ):
            created, updated = file_times(jsonl_file)
            sessions.append(SessionInfo(
                session_id=session_id,
                path=jsonl_file,
                created=created,
                updated=updated,
            ))
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        try:
            text = info.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read Codex rollout %s: %s", info.path, e)
            return None

        messages, metadata = self._parse_jsonl(text, info.path)
        return SessionDetail(
            session_id=info.session_id,
            title=extract_title(messages, placeholder_title(self.label, info.session_id)),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path or detail.metadata.cwd

    # ── Private helpers ──────────────────────────────────────────────

    def _recent_day_dirs(self) -> list[Path]:
        today = date.today()
        dirs = []
        for root in self.get_base_paths():
            if not root.is_dir():
                continue
            for offset in range(CODEX_MAX_DAYS):
                day = today - timedelta(days=offset)
                day_dir = root / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}"
                if day_dir.is_dir():
                    dirs.append(day_dir)
        return dirs

    def _parse_jsonl(self, text: str, path: Path) -> tuple[list[ParsedMessage], SessionMetadata]:
        messages: list[ParsedMessage] = []
        metadata = SessionMetadata()
        models = ModelCounter()

        for line_num, entry, _ in iter_jsonl(text):
            if entry is None:
                logger.debug("Bad JSON at %s:%d", path, line_num)
                continue

            timestamp = entry.get("timestamp")
            if timestamp:
                metadata.created = metadata.created or timestamp
                metadata.modified = timestamp

            payload = entry.get("payload")
            if not isinstance(payload, dict):
                payload = {}

            entry_type = entry.get("type")
            if entry_type == "session_meta":
                git = payload.get("git") if isinstance(payload.get("git"), dict) else {}
                metadata.version = payload.get("cli_version")
                metadata.git_branch = git.get("branch")
                metadata.cwd = payload.get("cwd")
            elif entry_type == "response_item":
                msg = self._parse_response_item(payload, timestamp or "")
                if msg is not None:
                    messages.append(msg)
            elif entry_type == "turn_context":
                models.add(payload.get("model"))

        metadata.message_count = len(messages)
        metadata.models = models.sorted()
        return correlate(messages), metadata

    def _parse_response_item(self, payload: dict, timestamp: str) -> ParsedMessage | None:
        item_type = payload.get("type")
        call_id = payload.get("call_id")

        if item_type == "message":
            return self._parse_message_payload(payload, timestamp)

        if item_type == "function_call":
            arguments = payload.get("arguments")
            tool_input = {}
            if arguments:
                try:
                    tool_input = json_to_map(json.loads(arguments))
                except (json.JSONDecodeError, TypeError):
                    tool_input = {"arguments": str(arguments)}
            return ToolUse(
                timestamp=timestamp,
                tool_name=payload.get("name") or "function",
                tool_call_id=call_id,
                input=tool_input,
            )

        if item_type == "custom_tool_call":
            raw_input = payload.get("input")
            return ToolUse(
                timestamp=timestamp,
                tool_name=payload.get("name") or "tool",
                tool_call_id=call_id,
                input={"input": str(raw_input)[:_CUSTOM_INPUT_MAX_CHARS]} if raw_input else {},
            )

        if item_type == "function_call_output":
            output = payload.get("output")
            if output and not isinstance(output, str):
                output = json.dumps(output)
            return ToolResultMessage(
                timestamp=timestamp,
                tool_call_id=call_id,
                output=[CodeBlock(output)] if output else [],
            )

        if item_type == "custom_tool_call_output":
            return ToolResultMessage(
                timestamp=timestamp,
                tool_call_id=call_id,
                output=_custom_output(payload.get("output")),
            )

        if item_type == "reasoning":
            summary = payload.get("summary") if isinstance(payload.get("summary"), list) else []
            text = "\n".join(
                item["text"] for item in summary if isinstance(item, dict) and item.get("text")
            )
            return AssistantThinking(timestamp=timestamp, thinking=text) if text else None

        return None

    def _parse_message_payload(self, payload: dict, timestamp: str) -> ParsedMessage | None:
        blocks: list[ContentBlock] = []
        for item in payload.get("content") or []:
            if not isinstance(item, dict) or item.get("type") not in ("input_text", "output_text", "text"):
                continue
            text = item.get("text") or ""
            if any(marker in text for marker in _SYSTEM_MARKERS):
                continue
            blocks.append(TextBlock(text))

        if not blocks:
            return None
        if payload.get("role") == "user":
            return UserMessage(timestamp=timestamp, content=blocks)
        return AssistantText(timestamp=timestamp, content=blocks)


def extract_session_id(path: Path) -> str | None:
    """Session UUID from a rollout file name, or None for other files."""
    name = path.stem
    if not name.startswith("rollout-"):
        return None
    match = _SESSION_UUID.search(name)
    return match.group(1) if match else None


def _custom_output(output) -> list[CodeBlock]:
    """Custom tool outputs are JSON envelopes whose ``output`` field holds the text."""
    if not output:
        return []
    if not isinstance(output, str):
        return [CodeBlock(json.dumps(output))]
    try:
        envelope = json.loads(output)
    except json.JSONDecodeError:
        return [CodeBlock(output)]
    if isinstance(envelope, dict) and isinstance(envelope.get("output"), str) and envelope["output"]:
        return [CodeBlock(envelope["output"])]
    return [CodeBlock(output)]
