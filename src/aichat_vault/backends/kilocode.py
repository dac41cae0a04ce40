"""Kilo Code CLI chat history backend.

Reads ~/.kilocode/cli/:

- workspaces/workspace-map.json maps each project path to a workspace dir.
- workspaces/<dir>/session.json holds ``taskSessionMap`` (task id -> session id).
- global/tasks/<task-id>/ holds ui_messages.json (the "say"/"ask" event log),
  api_conversation_history.json (raw model turns, the source of tool_use
  blocks and of the model name) and task_metadata.json.
"""

import json
import logging
import re
from pathlib import Path

from ..config import get_kilo_path
from ..core import (
    AssistantThinking,
    InfoMessage,
    ParsedMessage,
    Provider,
    SessionDetail,
    SessionInfo,
    SessionMetadata,
    TextBlock,
    ToolUse,
    UserMessage,
)
from ..normalize import (
    correlate,
    extract_title,
    file_times,
    json_to_map,
    now_iso,
    placeholder_title,
    read_json,
    to_iso,
    truncate_title,
)
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

_MODEL_TAG = re.compile(r"<model>([^<]+)</model>")


class KiloCodeProvider(ChatProvider):
    """Provider for Kilo Code CLI tasks."""

    name = Provider.KILO_CODE
    label = "Kilo"

    def get_base_path(self) -> Path:
        return get_kilo_path()

    def is_available(self) -> bool:
        return (self.get_base_path() / "workspaces" / "workspace-map.json").is_file()

    def list_sessions(self) -> list[SessionInfo]:
        base = self.get_base_path()
        map_path = base / "workspaces" / "workspace-map.json"
        if not map_path.is_file():
            return []
        workspace_map = read_json(map_path)
        if not isinstance(workspace_map, dict):
            return []

        tasks_dir = base / "global" / "tasks"
        sessions = []
        for project_path, workspace_dir in workspace_map.items():
            session_file = base / "workspaces" / str(workspace_dir) / "session.json"
            if not session_file.is_file():
                continue
            data = read_json(session_file)
            task_map = data.get("taskSessionMap") if isinstance(data, dict) else None
            if not isinstance(task_map, dict):
                continue

            for task_id, session_id in task_map.items():
                task_path = tasks_dir / task_id
                if not task_path.is_dir():
                    continue
                created, updated = file_times(task_path)
                sessions.append(SessionInfo(
                    session_id=str(session_id or task_id),
                    path=task_path,
                    project_path=project_path,
                    created=created,
                    updated=updated,
                    extra={"task_id": task_id},
                ))
        return sessions

    def parse_session(self, info: SessionInfo) -> SessionDetail | None:
        ui_path = info.path / "ui_messages.json"
        if not ui_path.is_file():
            return None
        ui_messages = read_json(ui_path)
        if not isinstance(ui_messages, list):
            return None

        api_path = info.path / "api_conversation_history.json"
        api_history = read_json(api_path) if api_path.is_file() else []
        if not isinstance(api_history, list):
            api_history = []
        meta_path = info.path / "task_metadata.json"
        task_meta = read_json(meta_path) if meta_path.is_file() else {}

        messages: list[ParsedMessage] = []
        api_call_ids = set()

        for api_msg in api_history:
            if not isinstance(api_msg, dict) or api_msg.get("role") != "assistant":
                continue
            timestamp = to_iso(api_msg.get("ts")) or now_iso()
            content = api_msg.get("content")
            for item in content if isinstance(content, list) else [content]:
                if not isinstance(item, dict) or item.get("type") != "tool_use":
                    continue
                tool_input = item.get("input")
                messages.append(ToolUse(
                    timestamp=timestamp,
                    tool_name=item.get("name") or "unknown",
                    tool_call_id=item.get("id"),
                    input=json_to_map(tool_input)
                    if isinstance(tool_input, dict)
                    else {"input": json.dumps(tool_input)},
                ))
                if item.get("id"):
                    api_call_ids.add(item["id"])

        created = modified = None
        for ui_msg in ui_messages:
            if not isinstance(ui_msg, dict):
                continue
            if ui_msg.get("ts"):
                created = created or to_iso(ui_msg["ts"])
                modified = to_iso(ui_msg["ts"])
            msg = self._parse_ui_message(ui_msg)
            if msg is None:
                continue
            # Tool uses already taken from the API history
            if isinstance(msg, ToolUse) and msg.tool_call_id in api_call_ids:
                continue
            messages.append(msg)

        message_count = len(messages)
        messages = correlate(messages)
        model = _model_from_history(api_history)
        metadata = SessionMetadata(
            cwd=_workspace_from_metadata(task_meta),
            models=[(model, 1)] if model else [],
            created=created,
            modified=modified,
            message_count=message_count,
        )
        fallback = _title_from_history(api_history) or placeholder_title(self.label, info.session_id)
        return SessionDetail(
            session_id=info.session_id,
            title=extract_title(messages, fallback),
            messages=messages,
            metadata=metadata,
        )

    def resolve_project_path(self, info: SessionInfo, detail: SessionDetail) -> str | None:
        return info.project_path or detail.metadata.cwd

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_ui_message(self, ui_msg: dict) -> ParsedMessage | None:
        timestamp = to_iso(ui_msg.get("ts")) or now_iso()
        text = ui_msg.get("text") if isinstance(ui_msg.get("text"), str) else ""

        if ui_msg.get("type") == "say":
            say = ui_msg.get("say")
            if say == "text":
                return UserMessage(timestamp=timestamp, content=[TextBlock(text)])
            if say == "reasoning":
                return AssistantThinking(timestamp=timestamp, thinking=text)
            if say == "error":
                return InfoMessage(
                    timestamp=timestamp,
                    title="error",
                    content=TextBlock(text or "Unknown error"),
                    style="error",
                )
            # checkpoint_saved, api_req_started, api_req_finished and the rest
            return None

        if ui_msg.get("type") == "ask":
            ask = ui_msg.get("ask")
            if ask == "tool":
                try:
                    tool_data = json.loads(text or "{}")
                except json.JSONDecodeError:
                    tool_data = None
                if not isinstance(tool_data, dict):
                    return InfoMessage(
                        timestamp=timestamp,
                        title="tool_error",
                        content=TextBlock(f"Failed to parse tool: {text}"),
                        style="error",
                    )
                return ToolUse(
                    timestamp=timestamp,
                    tool_name=tool_data.get("tool") or "unknown",
                    input=json_to_map({k: v for k, v in tool_data.items() if k != "tool"}),
                )
            if ask == "followup":
                return InfoMessage(
                    timestamp=timestamp, title="followup", subtitle="question", content=TextBlock(text)
                )
            if ask == "command":
                return InfoMessage(timestamp=timestamp, title="command", content=TextBlock(text))
        return None


def _user_texts(api_history: list) -> list[str]:
    texts = []
    for msg in api_history:
        if not isinstance(msg, dict) or msg.get("role") != "user":
            continue
        content = msg.get("content")
        if isinstance(content, str):
            texts.append(content)
        elif isinstance(content, list):
            texts.extend(
                item["text"]
                for item in content
                if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str)
            )
    return texts


def _model_from_history(api_history: list) -> str | None:
    """Model named in the first <environment_details> block of a user turn."""
    for text in _user_texts(api_history):
        if "<environment_details>" in text:
            match = _MODEL_TAG.search(text)
            if match:
                return match.group(1)
    return None


def _title_from_history(api_history: list) -> str | None:
    for text in _user_texts(api_history):
        if text.strip():
            return truncate_title(text)
    return None


def _workspace_from_metadata(task_meta) -> str | None:
    if not isinstance(task_meta, dict):
        return None
    if task_meta.get("cwd"):
        return task_meta["cwd"]
    files = task_meta.get("files_in_context")
    if isinstance(files, list) and files and isinstance(files[0], dict) and files[0].get("path"):
        return str(Path(files[0]["path"]).parent)
    return None
