"""Junie chat history backend.

Reads ~/.junie/sessions/. ``index.jsonl`` lists every session with its
createdAt/updatedAt (epoch ms) and task name; each session directory holds
an ``events.jsonl`` stream. UserPromptEvent and AgentResponseEvent carry the
conversation; SessionA2uxEvent carries a JSON blob whose agent state names
the project root directory.
"""

import json
import logging
import re
from pathlib import Path

from ..config import get_junie_path
from ..core import (
    AssistantText,
    ParsedMessage,
    Provider,
    SessionDetail,
    SessionInfo,
    SessionMetadata,
    UserMessage,
)
from ..normalize import (
    coerce_content,
    correlate,
    extract_title,
    iter_jsonl,
    malformed_info,
    now_iso,
    placeholder_title,
    to_iso,
)
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

_PROJECT_ROOT = re.compile(r"Project root directory:\s*(.+?)\n")


class JunieProvider(ChatProvider):
    """Provider for JetBrains Junie sessions."""

    name = Provider.JUNIE
    label = "Junie"

    def get_base_path(self) -> Path:
        return get_junie_path()

    def is_available(self) -> bool:
        return (self.get_base_path() / "index.jsonl").is_file()

    def list_sessions(self) -> list[SessionInfo]:
        base = self.get_base_path()
        index_path = base / "index.jsonl"
        try:
            text = index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read Junie index %s: %s", index_path, e)
            return []

        sessions = []
        for line_num, entry, _ in iter_jsonl(text):
            if entry is None or not entry.get("sessionId"):
                logger.debug("Skipping Junie index line %d", line_num)
                continue
            session_id = str(entry["sessionId"])
            session_dir = base / session_id
            if not session_dir.is_dir():
                continue
            sessions.append(SessionInfo(
                session_id=session_id,
                path=session_dir / "events.jsonl",
                title=entry.get("taskName") or None,
                created=to_iso(entry.get("createdAt")),
                updated=to_iso(entry.get("updatedAt")),
            ))

        sessions.sort(key=lambda s: s.updated or "", reverse=True)
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        try:
            text = info.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read Junie events %s: %s", info.path, e)
            return None

        fallback_ts = info.updated or now_iso()
        messages: list[ParsedMessage] = []
        project_root = None

        for line_num, event, _ in iter_jsonl(text):
            if event is None:
                logger.debug("Bad JSON at %s:%d", info.path, line_num)
                continue

            timestamp = to_iso(event.get("timestamp")) or fallback_ts
            kind = event.get("kind")

            if kind == "SessionA2uxEvent":
                project_root = _project_root(event) or project_root
            elif kind == "UserPromptEvent" and event.get("prompt"):
                content = coerce_content(event["prompt"])
                messages.append(
                    UserMessage(timestamp=timestamp, content=content)
                    if content
                    else malformed_info(timestamp, "parse", json.dumps(event["prompt"]))
                )
            elif kind == "AgentResponseEvent" and event.get("response"):
                content = coerce_content(event["response"])
                messages.append(
                    AssistantText(timestamp=timestamp, content=content)
                    if content
                    else malformed_info(timestamp, "parse", json.dumps(event["response"]))
                )

        messages = correlate(messages)
        metadata = SessionMetadata(
            cwd=project_root,
            created=info.created,
            modified=info.updated,
            message_count=len(messages),
        )
        return SessionDetail(
            session_id=info.session_id,
            title=extract_title(messages, placeholder_title(self.label, info.session_id)),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path or detail.metadata.cwd


def _project_root(event: dict) -> str | None:
    """Project root named in an agent-state blob, if any."""
    inner = event.get("event") if isinstance(event.get("event"), dict) else {}
    agent_event = inner.get("agentEvent") if isinstance(inner.get("agentEvent"), dict) else {}
    blob = agent_event.get("blob")
    if not isinstance(blob, str):
        return None
    try:
        state = json.loads(blob)
    except json.JSONDecodeError:
        return None
    try:
        content = state["lastAgentState"]["projectStr"]["content"]
    except (KeyError, TypeError):
        return None
    match = _PROJECT_ROOT.search(content) if isinstance(content, str) else None
    return match.group(1).strip() if match else None
