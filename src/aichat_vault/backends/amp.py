"""Amp chat history backend.

Reads ~/.local/share/amp/threads/T-*.json. Each thread is a single JSON
document: ``created`` (epoch ms), ``env.initial.trees[0].uri`` (the
workspace as a file:// URI) and a ``messages`` array. User messages carry
text blocks and tool_result blocks (keyed by ``toolUseID``, output in
``run.result``); assistant messages carry text, thinking and tool_use blocks.
"""

import json
import logging
from pathlib import Path

from ..config import get_amp_path
from ..core import (
    AssistantText,
    AssistantThinking,
    CodeBlock,
    ContentBlock,
    JsonBlock,
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
    json_to_map,
    malformed_info,
    now_iso,
    placeholder_title,
    read_json,
    to_iso,
)
from ..provider import ChatProvider

logger = logging.getLogger(__name__)


class AmpProvider(ChatProvider):
    """Provider for Amp threads."""

    name = Provider.AMP
    label = "Amp"

    def get_base_path(self) -> Path:
        return get_amp_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_sessions(self) -> list[SessionInfo]:
        base = self.get_base_path()
        if not base.is_dir():
            return []

        sessions = []
        for thread_file in base.glob("T-*.json"):
            data = read_json(thread_file)
            if not isinstance(data, dict):
                continue
            created = to_iso(data.get("created"))
            sessions.append(SessionInfo(
                session_id=thread_file.stem,
                path=thread_file,
                project_path=_working_directory(data),
                # Threads carry no separate update time
                created=created,
                updated=created,
            ))

        sessions.sort(key=lambda s: s.created or "", reverse=True)
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        data = read_json(info.path)
        if not isinstance(data, dict):
            return None

        created = to_iso(data.get("created"))
        fallback_ts = created or now_iso()
        messages: list[ParsedMessage] = []
        models = ModelCounter()

        for msg in data.get("messages") or []:
            if not isinstance(msg, dict):
                continue
            meta = msg.get("meta") if isinstance(msg.get("meta"), dict) else {}
            timestamp = to_iso(meta.get("sentAt")) or fallback_ts
            blocks = [b for b in msg.get("content") or [] if isinstance(b, dict)]

            role = msg.get("role")
            if role == "user":
                messages.extend(self._parse_user_message(blocks, timestamp))
            elif role == "assistant":
                usage = msg.get("usage") if isinstance(msg.get("usage"), dict) else {}
                models.add(usage.get("model"))
                messages.extend(self._parse_assistant_message(blocks, timestamp))

        messages = correlate(messages)
        session_id = str(data.get("id") or info.session_id)
        metadata = SessionMetadata(
            cwd=_working_directory(data),
            created=created,
            models=models.sorted(),
            message_count=len(messages),
        )
        return SessionDetail(
            session_id=session_id,
            title=extract_title(messages, placeholder_title(self.label, session_id)),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path or detail.metadata.cwd

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_user_message(self, blocks: list[dict], timestamp: str) -> list[ParsedMessage]:
        content: list[ContentBlock] = []
        results: list[ParsedMessage] = []

        for block in blocks:
            block_type = block.get("type")
            if block_type == "text":
                text = block.get("text")
                if isinstance(text, str) and text.strip():
                    content.append(TextBlock(text))
            elif block_type == "tool_result":
                run = block.get("run") if isinstance(block.get("run"), dict) else {}
                result = run.get("result")
                if result is None or result == "":
                    output = []
                elif isinstance(result, str):
                    output = [CodeBlock(result)]
                else:
                    output = [CodeBlock(json.dumps(result, indent=2))]
                results.append(ToolResultMessage(
                    timestamp=timestamp,
                    tool_call_id=block.get("toolUseID"),
                    output=output,
                    is_error=run.get("status") == "error",
                ))
            else:
                content.append(JsonBlock(json.dumps(block)))

        messages: list[ParsedMessage] = []
        if content:
            messages.append(UserMessage(timestamp=timestamp, content=content))
        elif not results:
            messages.append(malformed_info(timestamp, "parse", "User message with no content"))
        messages.extend(results)
        return messages

    def _parse_assistant_message(self, blocks: list[dict], timestamp: str) -> list[ParsedMessage]:
        messages: list[ParsedMessage] = []
        text_content: list[ContentBlock] = []
        thinking = None

        for block in blocks:
            block_type = block.get("type")
            if block_type == "thinking" and block.get("thinking"):
                thinking = block["thinking"]
            elif block_type == "text" and block.get("text"):
                text_content.append(MarkdownBlock(block["text"]))
            elif block_type == "tool_use":
                messages.append(ToolUse(
                    timestamp=timestamp,
                    tool_name=block.get("name") or "tool",
                    tool_call_id=block.get("id"),
                    input=json_to_map(block.get("input")),
                ))

        if text_content:
            messages.append(AssistantText(timestamp=timestamp, content=text_content))
        elif thinking:
            messages.append(AssistantThinking(timestamp=timestamp, thinking=thinking))
        return messages


def _working_directory(data: dict) -> str | None:
    """First workspace tree of the thread, without its file:// prefix."""
    env = data.get("env") if isinstance(data.get("env"), dict) else {}
    initial = env.get("initial") if isinstance(env.get("initial"), dict) else {}
    trees = initial.get("trees")
    if not isinstance(trees, list) or not trees or not isinstance(trees[0], dict):
        return None
    uri = trees[0].get("uri")
    if not isinstance(uri, str) or not uri:
        return None
    return uri[len("file://"):] if uri.startswith("file://") else uri
