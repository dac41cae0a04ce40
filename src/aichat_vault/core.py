"""Core data models for aichat-vault.

Every backend produces the same canonical vocabulary: content blocks,
parsed messages, session metadata and session details. The import side adds
the persisted shapes (projects, sessions, renderable message cards).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Optional, Union


class Provider(str, Enum):
    """Source tag for every imported session."""

    CLAUDE_CODE = "claude_code"
    OPENCODE = "opencode"
    CODEX = "codex"
    AMP = "amp"
    JUNIE = "junie"
    KILO_CODE = "kilocode"
    GEMINI = "gemini"


# ── Content blocks ───────────────────────────────────────────────


@dataclass(frozen=True)
class TextBlock:
    text: str
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class CodeBlock:
    code: str
    language: Optional[str] = None
    kind: ClassVar[str] = "code"


@dataclass(frozen=True)
class MarkdownBlock:
    markdown: str
    kind: ClassVar[str] = "markdown"


@dataclass(frozen=True)
class JsonBlock:
    json: str  # raw serialized text
    kind: ClassVar[str] = "json"


@dataclass(frozen=True)
class DiffBlock:
    old_text: str
    new_text: str
    file_path: Optional[str] = None
    kind: ClassVar[str] = "diff"


@dataclass(frozen=True)
class HtmlBlock:
    html: str
    kind: ClassVar[str] = "html"


ContentBlock = Union[TextBlock, CodeBlock, MarkdownBlock, JsonBlock, DiffBlock, HtmlBlock]


def content_to_dict(block: ContentBlock) -> dict:
    """Serialize a content block to a JSON-compatible dict tagged by ``type``."""
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, CodeBlock):
        data = {"type": "code", "code": block.code}
        if block.language:
            data["language"] = block.language
        return data
    if isinstance(block, MarkdownBlock):
        return {"type": "markdown", "markdown": block.markdown}
    if isinstance(block, JsonBlock):
        return {"type": "json", "json": block.json}
    if isinstance(block, DiffBlock):
        data = {"type": "diff", "old_text": block.old_text, "new_text": block.new_text}
        if block.file_path:
            data["file_path"] = block.file_path
        return data
    if isinstance(block, HtmlBlock):
        return {"type": "html", "html": block.html}
    raise TypeError(f"Unknown content block: {block!r}")


def content_from_dict(data: dict) -> ContentBlock:
    """Inverse of :func:`content_to_dict`. Raises ValueError on unknown tags."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(str(data.get("text", "")))
    if block_type == "code":
        return CodeBlock(str(data.get("code", "")), data.get("language"))
    if block_type == "markdown":
        return MarkdownBlock(str(data.get("markdown", "")))
    if block_type == "json":
        return JsonBlock(str(data.get("json", "")))
    if block_type == "diff":
        return DiffBlock(
            str(data.get("old_text", "")),
            str(data.get("new_text", "")),
            data.get("file_path"),
        )
    if block_type == "html":
        return HtmlBlock(str(data.get("html", "")))
    raise ValueError(f"Unknown content block type: {block_type!r}")


# ── Parsed messages ──────────────────────────────────────────────


@dataclass(frozen=True)
class ToolResult:
    """A tool result reduced to its display output, attached to a ToolUse."""

    output: str
    is_error: bool = False
    tool_call_id: Optional[str] = None


@dataclass
class UserMessage:
    timestamp: str
    content: list[ContentBlock]
    kind: ClassVar[str] = "user"


@dataclass
class AssistantText:
    timestamp: str
    content: list[ContentBlock]
    kind: ClassVar[str] = "assistant_text"


@dataclass
class AssistantThinking:
    timestamp: str
    thinking: str
    kind: ClassVar[str] = "assistant_thinking"


@dataclass
class ToolUse:
    timestamp: str
    tool_name: str
    tool_call_id: Optional[str] = None
    input: dict[str, str] = field(default_factory=dict)
    results: list[ToolResult] = field(default_factory=list)
    kind: ClassVar[str] = "tool_use"


@dataclass
class ToolResultMessage:
    timestamp: str
    tool_call_id: Optional[str]
    output: list[ContentBlock]
    is_error: bool = False
    tool_name: Optional[str] = None
    kind: ClassVar[str] = "tool_result"


@dataclass
class InfoMessage:
    timestamp: str
    title: str
    subtitle: Optional[str] = None
    content: Optional[ContentBlock] = None
    style: str = "default"  # "default" | "error"
    kind: ClassVar[str] = "info"


ParsedMessage = Union[
    UserMessage, AssistantText, AssistantThinking, ToolUse, ToolResultMessage, InfoMessage
]


def message_to_dict(msg: ParsedMessage) -> dict:
    """Serialize a parsed message to a JSON-compatible dict tagged by ``type``."""
    if isinstance(msg, (UserMessage, AssistantText)):
        return {
            "type": msg.kind,
            "timestamp": msg.timestamp,
            "content": [content_to_dict(b) for b in msg.content],
        }
    if isinstance(msg, AssistantThinking):
        return {"type": msg.kind, "timestamp": msg.timestamp, "thinking": msg.thinking}
    if isinstance(msg, ToolUse):
        return {
            "type": msg.kind,
            "timestamp": msg.timestamp,
            "tool_name": msg.tool_name,
            "tool_call_id": msg.tool_call_id,
            "input": dict(msg.input),
            "results": [
                {"output": r.output, "is_error": r.is_error, "tool_call_id": r.tool_call_id}
                for r in msg.results
            ],
        }
    if isinstance(msg, ToolResultMessage):
        return {
            "type": msg.kind,
            "timestamp": msg.timestamp,
            "tool_call_id": msg.tool_call_id,
            "tool_name": msg.tool_name,
            "output": [content_to_dict(b) for b in msg.output],
            "is_error": msg.is_error,
        }
    if isinstance(msg, InfoMessage):
        return {
            "type": msg.kind,
            "timestamp": msg.timestamp,
            "title": msg.title,
            "subtitle": msg.subtitle,
            "content": content_to_dict(msg.content) if msg.content is not None else None,
            "style": msg.style,
        }
    raise TypeError(f"Unknown message: {msg!r}")


def message_from_dict(data: dict) -> ParsedMessage:
    """Inverse of :func:`message_to_dict`. Raises ValueError on malformed input."""
    if not isinstance(data, dict):
        raise ValueError("Message must be an object")
    msg_type = data.get("type")
    timestamp = str(data.get("timestamp") or "")

    if msg_type in ("user", "assistant_text"):
        blocks = [content_from_dict(b) for b in data.get("content") or []]
        cls = UserMessage if msg_type == "user" else AssistantText
        return cls(timestamp=timestamp, content=blocks)
    if msg_type == "assistant_thinking":
        return AssistantThinking(timestamp=timestamp, thinking=str(data.get("thinking", "")))
    if msg_type == "tool_use":
        return ToolUse(
            timestamp=timestamp,
            tool_name=str(data.get("tool_name") or "tool"),
            tool_call_id=data.get("tool_call_id"),
            input={str(k): str(v) for k, v in (data.get("input") or {}).items()},
            results=[
                ToolResult(
                    output=str(r.get("output", "")),
                    is_error=bool(r.get("is_error", False)),
                    tool_call_id=r.get("tool_call_id"),
                )
                for r in data.get("results") or []
            ],
        )
    if msg_type == "tool_result":
        return ToolResultMessage(
            timestamp=timestamp,
            tool_call_id=data.get("tool_call_id"),
            output=[content_from_dict(b) for b in data.get("output") or []],
            is_error=bool(data.get("is_error", False)),
            tool_name=data.get("tool_name"),
        )
    if msg_type == "info":
        content = data.get("content")
        return InfoMessage(
            timestamp=timestamp,
            title=str(data.get("title") or "info"),
            subtitle=data.get("subtitle"),
            content=content_from_dict(content) if content else None,
            style="error" if data.get("style") == "error" else "default",
        )
    raise ValueError(f"Unknown message type: {msg_type!r}")


# ── Sessions ─────────────────────────────────────────────────────


@dataclass
class SessionMetadata:
    """Source-reported facts about a session."""

    version: Optional[str] = None
    git_branch: Optional[str] = None
    cwd: Optional[str] = None
    models: list[tuple[str, int]] = field(default_factory=list)  # sorted by count desc
    created: Optional[str] = None
    modified: Optional[str] = None
    message_count: int = 0


@dataclass
class SessionDetail:
    """Normalizer output: one session in canonical form."""

    session_id: str  # provider-local identifier
    title: str
    messages: list[ParsedMessage]
    metadata: SessionMetadata = field(default_factory=SessionMetadata)


@dataclass
class SessionInfo:
    """Locator output: where a raw session lives and what is known before parsing."""

    session_id: str
    path: Path
    project_path: Optional[str] = None
    title: Optional[str] = None
    created: Optional[str] = None  # ISO 8601
    updated: Optional[str] = None  # ISO 8601
    extra: dict = field(default_factory=dict)


@dataclass
class SessionWithProject:
    """A normalized session plus the project it belongs to.

    This is the unit the importer batches by project, and the body of a
    single-session import request.
    """

    session: SessionDetail
    provider: Provider
    project_path: str
    project_name: str
    created: str
    updated: str
    title: Optional[str] = None  # overrides session.title when set

    def to_dict(self) -> dict:
        meta = self.session.metadata
        return {
            "session": {
                "session_id": self.session.session_id,
                "title": self.session.title,
                "messages": [message_to_dict(m) for m in self.session.messages],
                "metadata": {
                    "version": meta.version,
                    "git_branch": meta.git_branch,
                    "cwd": meta.cwd,
                    "models": [[name, count] for name, count in meta.models],
                    "created": meta.created,
                    "modified": meta.modified,
                    "message_count": meta.message_count,
                },
            },
            "provider": self.provider.value,
            "project_path": self.project_path,
            "project_name": self.project_name,
            "created": self.created,
            "updated": self.updated,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionWithProject":
        """Build from a request body. Raises ValueError/TypeError/KeyError on bad input."""
        session_data = data["session"]
        meta_data = session_data.get("metadata") or {}
        metadata = SessionMetadata(
            version=meta_data.get("version"),
            git_branch=meta_data.get("git_branch"),
            cwd=meta_data.get("cwd"),
            models=[(str(name), int(count)) for name, count in meta_data.get("models") or []],
            created=meta_data.get("created"),
            modified=meta_data.get("modified"),
            message_count=int(meta_data.get("message_count") or 0),
        )
        detail = SessionDetail(
            session_id=str(session_data["session_id"]),
            title=str(session_data.get("title") or ""),
            messages=[message_from_dict(m) for m in session_data.get("messages") or []],
            metadata=metadata,
        )
        return cls(
            session=detail,
            provider=Provider(data["provider"]),
            project_path=str(data.get("project_path") or ""),
            project_name=str(data.get("project_name") or ""),
            created=str(data.get("created") or ""),
            updated=str(data.get("updated") or ""),
            title=data.get("title"),
        )


# ── Persisted rows ───────────────────────────────────────────────


@dataclass
class Project:
    """A project row. Identity is the deterministic ``project_uuid``."""

    project_uuid: str
    name: str
    path: Optional[str]
    created_at: str
    updated_at: str
    id: Optional[int] = None


@dataclass
class Session:
    """A session row, unique per (project, provider session id)."""

    project_id: int
    session_id: str
    title: str
    provider: str
    created_at: str
    updated_at: str
    version: Optional[str] = None
    git_branch: Optional[str] = None
    cwd: Optional[str] = None
    models: list[tuple[str, int]] = field(default_factory=list)
    created: Optional[str] = None
    modified: Optional[str] = None
    message_count: int = 0
    id: Optional[int] = None

    @property
    def models_json(self) -> Optional[str]:
        return json.dumps([list(m) for m in self.models]) if self.models else None


CARD_TYPES = ("user", "assistant", "thinking", "tool-use", "tool-result", "info", "error")


@dataclass
class RenderableMessage:
    """A display card, unique per (session row, sequence)."""

    session_id: int  # sessions.id
    sequence: int  # zero-based position in the normalized order
    card_type: str  # one of CARD_TYPES
    title: str
    content: list[ContentBlock]
    timestamp: str
    created_at: str
    subtitle: Optional[str] = None
    can_expand: bool = True
    is_error: bool = False
    id: Optional[int] = None
