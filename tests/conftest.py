"""Shared test fixtures for aichat-vault."""

import json
from datetime import date, datetime, timezone

import pytest

from aichat_vault.core import (
    AssistantText,
    CodeBlock,
    MarkdownBlock,
    Provider,
    SessionDetail,
    SessionMetadata,
    SessionWithProject,
    TextBlock,
    ToolResult,
    ToolUse,
    UserMessage,
)
from aichat_vault.database import VaultDatabase
from aichat_vault.search import SearchIndex


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


# ── Stores ───────────────────────────────────────────────────────


@pytest.fixture
def database(tmp_path):
    db = VaultDatabase(tmp_path / "data" / "sessions.db")
    yield db
    db.close()


@pytest.fixture
def search_index(tmp_path):
    index = SearchIndex(tmp_path / "data" / "search.db")
    yield index
    index.close()


@pytest.fixture
def make_session():
    """Build a SessionWithProject for the given messages."""

    def _make(
        session_id="sess-001",
        messages=None,
        project_path="/Users/testuser/dev/myapp",
        project_name="myapp",
        provider=Provider.CLAUDE_CODE,
        created="2025-01-20T10:00:00.000Z",
        updated="2025-01-20T11:00:00.000Z",
        title=None,
    ):
        if messages is None:
            messages = [
                UserMessage(
                    timestamp="2025-01-20T10:00:00.000Z",
                    content=[TextBlock("Fix the login bug in src/auth.ts")],
                ),
                ToolUse(
                    timestamp="2025-01-20T10:00:05.000Z",
                    tool_name="Read",
                    tool_call_id="c1",
                    input={"file_path": "/Users/testuser/dev/myapp/src/auth.ts"},
                    results=[ToolResult("export function login() {}", False, "c1")],
                ),
            ]
        detail = SessionDetail(
            session_id=session_id,
            title="Fix the login bug in src/auth.ts",
            messages=messages,
            metadata=SessionMetadata(
                version="1.0.0",
                git_branch="main",
                cwd=project_path,
                models=[("claude-sonnet-4", 2)],
                created=created,
                modified=updated,
                message_count=len(messages),
            ),
        )
        return SessionWithProject(
            session=detail,
            provider=provider,
            project_path=project_path,
            project_name=project_name,
            created=created,
            updated=updated,
            title=title,
        )

    return _make


@pytest.fixture
def long_messages():
    """A session long enough to span several write batches."""
    return [
        AssistantText(
            timestamp=f"2025-01-20T10:{i // 60:02d}:{i % 60:02d}.000Z",
            content=[MarkdownBlock(f"step {i} of the migration")],
        )
        for i in range(120)
    ]


# ── Provider trees ───────────────────────────────────────────────


@pytest.fixture
def tmp_claude_code_dir(tmp_path):
    """Create a synthetic Claude Code projects directory with realistic JSONL.

    Includes:
    - User text messages and a slash-command echo
    - Assistant text, thinking-only and tool_use entries
    - User tool_result entries
    - A system turn_duration entry
    - file-history-snapshot, progress and isMeta lines (should be skipped)
    """
    projects = tmp_path / "projects"
    project_dir = projects / "-Users-testuser-dev-myapp"
    project_dir.mkdir(parents=True)

    header = {"version": "1.0.58", "gitBranch": "main", "cwd": "/Users/testuser/dev/myapp"}
    lines = [
        # 1. User prompt
        {
            **header,
            "type": "user",
            "message": {"role": "user", "content": "Help me refactor the auth module"},
            "timestamp": "2025-01-20T10:00:00Z",
        },
        # 2. Meta line (skipped)
        {
            **header,
            "type": "user",
            "isMeta": True,
            "message": {"role": "user", "content": "Caveat: local command output"},
            "timestamp": "2025-01-20T10:00:01Z",
        },
        # 3. Assistant text + tool_use in same entry
        {
            **header,
            "type": "assistant",
            "message": {"role": "assistant", "model": "claude-sonnet-4", "content": [
                {"type": "text", "text": "Let me read the current code."},
                {"type": "tool_use", "id": "toolu_001", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
            ]},
            "timestamp": "2025-01-20T10:00:30Z",
        },
        # 4. Tool result (appears as user type entry)
        {
            **header,
            "type": "user",
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_001", "content": "export function authenticate() {}"},
            ]},
            "timestamp": "2025-01-20T10:00:31Z",
        },
        # 5. Thinking only
        {
            **header,
            "type": "assistant",
            "message": {"role": "assistant", "model": "claude-sonnet-4", "content": [
                {"type": "thinking", "thinking": "Split validation from refresh."},
            ]},
            "timestamp": "2025-01-20T10:01:00Z",
        },
        # 6. Plain assistant text
        {
            **header,
            "type": "assistant",
            "message": {"role": "assistant", "model": "claude-opus-4", "content": [
                {"type": "text", "text": "Done. The module is now split."},
            ]},
            "timestamp": "2025-01-20T10:02:00Z",
        },
        # 7. file-history-snapshot (skipped)
        {"type": "file-history-snapshot", "files": [{"path": "/src/auth.ts"}]},
        # 8. Slash command echo
        {
            **header,
            "type": "user",
            "message": {"role": "user", "content": "<command-name>/clear</command-name>"},
            "timestamp": "2025-01-20T10:03:00Z",
        },
        # 9. Turn duration
        {
            "type": "system",
            "subtype": "turn_duration",
            "durationMs": 65000,
            "timestamp": "2025-01-20T10:03:05Z",
        },
        # 10. Progress entry (skipped)
        {"type": "progress", "data": {"type": "hook_progress"}, "timestamp": "2025-01-20T10:03:06Z"},
    ]
    text = "\n".join(json.dumps(line) for line in lines) + "\nnot json at all\n{broken\n"
    (project_dir / "session-001.jsonl").write_text(text, encoding="utf-8")

    # A second session with only a command echo, so it falls back to the placeholder title
    (project_dir / "abcdef123456.jsonl").write_text(
        json.dumps({
            "type": "user",
            "message": {"role": "user", "content": "<command-name>/help</command-name>"},
            "timestamp": "2025-01-21T09:00:00Z",
        }),
        encoding="utf-8",
    )

    return projects


@pytest.fixture
def tmp_opencode_dir(tmp_path):
    """Create a synthetic OpenCode storage directory with parts."""
    storage = tmp_path / "storage"

    ses_dir = storage / "session" / "proj1"
    ses_dir.mkdir(parents=True)
    ses_data = {
        "id": "ses_001",
        "projectID": "proj1",
        "title": "Debug API endpoint",
        "directory": "/Users/testuser/dev/api-server",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 0), "updated": _ms(2025, 1, 22, 8, 30, 0)},
    }
    (ses_dir / "ses_001.json").write_text(json.dumps(ses_data), encoding="utf-8")

    msg_dir = storage / "message" / "ses_001"
    msg_dir.mkdir(parents=True)
    messages = {
        "msg_001": {"id": "msg_001", "role": "user", "time": {"created": _ms(2025, 1, 22, 8, 0, 0)}},
        "msg_002": {
            "id": "msg_002",
            "role": "assistant",
            "modelID": "gpt-5",
            "time": {"created": _ms(2025, 1, 22, 8, 0, 30)},
        },
        "msg_003": {
            "id": "msg_003",
            "role": "assistant",
            "model": {"providerID": "openai", "modelID": "gpt-5"},
            "time": {"created": _ms(2025, 1, 22, 8, 1, 0)},
        },
        "msg_004": {
            "id": "msg_004",
            "role": "assistant",
            "time": {"created": _ms(2025, 1, 22, 8, 2, 0)},
            "error": {"name": "APIError", "data": {"message": "Rate limit exceeded"}},
        },
    }
    for msg_id, data in messages.items():
        (msg_dir / f"{msg_id}.json").write_text(json.dumps(data), encoding="utf-8")
    # Written first alphabetically but unparseable: must sort last
    (msg_dir / "msg_000.json").write_text("{not valid", encoding="utf-8")

    def write_parts(msg_id, parts):
        part_dir = storage / "part" / msg_id
        part_dir.mkdir(parents=True)
        for i, part in enumerate(parts):
            (part_dir / f"prt_{i:03d}.json").write_text(json.dumps(part), encoding="utf-8")

    write_parts("msg_001", [
        {"type": "text", "text": "Why is the /api/users endpoint returning 500?"},
    ])
    write_parts("msg_002", [
        {"type": "text", "text": "Let me check the logs.", "time": {"start": _ms(2025, 1, 22, 8, 0, 40)}},
        {"type": "reasoning", "text": "Probably the query.", "time": {"start": _ms(2025, 1, 22, 8, 0, 35)}},
    ])
    write_parts("msg_003", [
        {"type": "step-start"},
        {
            "type": "tool",
            "tool": "grep",
            "callID": "call_001",
            "state": {
                "status": "completed",
                "input": {"pattern": "SELECT.*FROM users", "include": "*.ts"},
                "output": "src/db.ts:15: SELECT * FROM users WHERE id = $1",
            },
        },
    ])

    return storage


@pytest.fixture
def tmp_codex_dir(tmp_path):
    """Create a synthetic Codex sessions root with a rollout file dated today."""
    root = tmp_path / "codex" / "sessions"
    today = date.today()
    day_dir = root / f"{today.year:04d}" / f"{today.month:02d}" / f"{today.day:02d}"
    day_dir.mkdir(parents=True)

    session_id = "0199a1b2-c3d4-7e5f-8a9b-0c1d2e3f4a5b"
    lines = [
        {"type": "session_meta", "timestamp": "2025-02-01T12:00:00Z", "payload": {
            "id": session_id,
            "cwd": "/home/dev/codex-project",
            "cli_version": "0.40.0",
            "git": {"branch": "feature/x"},
        }},
        {"type": "turn_context", "timestamp": "2025-02-01T12:00:00Z", "payload": {"model": "gpt-5-codex"}},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:01Z", "payload": {
            "type": "message", "role": "user",
            "content": [{"type": "input_text", "text": "<environment_context>cwd</environment_context>"}],
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:02Z", "payload": {
            "type": "message", "role": "user",
            "content": [{"type": "input_text", "text": "List the files in src"}],
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:03Z", "payload": {
            "type": "reasoning", "summary": [{"type": "summary_text", "text": "Use ls."}],
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:04Z", "payload": {
            "type": "function_call", "name": "shell", "call_id": "call_a",
            "arguments": json.dumps({"command": ["ls", "src"]}),
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:05Z", "payload": {
            "type": "function_call_output", "call_id": "call_a", "output": "main.py\nutil.py",
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:06Z", "payload": {
            "type": "custom_tool_call", "name": "apply_patch", "call_id": "call_b",
            "input": "*** Begin Patch\n*** End Patch",
        }},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:07Z", "payload": {
            "type": "custom_tool_call_output", "call_id": "call_b",
            "output": json.dumps({"output": "Success. Updated 1 file", "metadata": {"exit_code": 0}}),
        }},
        {"type": "turn_context", "timestamp": "2025-02-01T12:00:08Z", "payload": {"model": "gpt-5-codex"}},
        {"type": "response_item", "timestamp": "2025-02-01T12:00:09Z", "payload": {
            "type": "message", "role": "assistant",
            "content": [{"type": "output_text", "text": "src holds main.py and util.py."}],
        }},
    ]
    rollout = day_dir / f"rollout-2025-02-01T12-00-00-{session_id}.jsonl"
    rollout.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")
    (day_dir / "notes.jsonl").write_text("{}", encoding="utf-8")

    return root


@pytest.fixture
def tmp_amp_dir(tmp_path):
    """Create a synthetic Amp threads directory."""
    threads = tmp_path / "amp" / "threads"
    threads.mkdir(parents=True)

    thread = {
        "id": "T-0001",
        "created": _ms(2025, 3, 1, 9, 0, 0),
        "env": {"initial": {"trees": [{"uri": "file:///Users/testuser/dev/amp-app"}]}},
        "messages": [
            {
                "role": "user",
                "content": [{"type": "text", "text": "Add a health check endpoint"}],
                "meta": {"sentAt": _ms(2025, 3, 1, 9, 0, 1)},
            },
            {
                "role": "assistant",
                "usage": {"model": "claude-sonnet-4"},
                "content": [
                    {"type": "thinking", "thinking": "Look at the router first."},
                    {"type": "tool_use", "id": "tu_1", "name": "read_file", "input": {"path": "app.py"}},
                ],
            },
            {
                "role": "user",
                "content": [{"type": "tool_result", "toolUseID": "tu_1", "run": {"status": "done", "result": "app = Flask()"}}],
            },
            {
                "role": "assistant",
                "usage": {"model": "claude-sonnet-4"},
                "content": [{"type": "text", "text": "Added `/health`."}],
            },
            {"role": "user", "content": []},
        ],
    }
    (threads / "T-0001.json").write_text(json.dumps(thread), encoding="utf-8")
    (threads / "T-broken.json").write_text("{", encoding="utf-8")

    return threads


@pytest.fixture
def tmp_junie_dir(tmp_path):
    """Create a synthetic Junie sessions directory with an index and event stream."""
    sessions = tmp_path / "junie" / "sessions"
    session_dir = sessions / "jun-001"
    session_dir.mkdir(parents=True)

    index = [
        {"sessionId": "jun-001", "taskName": "Write unit tests",
         "createdAt": _ms(2025, 4, 2, 14, 0, 0), "updatedAt": _ms(2025, 4, 2, 15, 0, 0)},
        {"sessionId": "jun-missing", "taskName": "Gone",
         "createdAt": _ms(2025, 4, 1, 14, 0, 0), "updatedAt": _ms(2025, 4, 1, 15, 0, 0)},
    ]
    (sessions / "index.jsonl").write_text(
        "\n".join(json.dumps(entry) for entry in index) + "\n{oops\n", encoding="utf-8"
    )

    blob = json.dumps({
        "lastAgentState": {
            "projectStr": {"content": "Project root directory: /Users/testuser/dev/junie-app\nOS: macOS\n"}
        }
    })
    events = [
        {"kind": "SessionA2uxEvent", "timestamp": _ms(2025, 4, 2, 14, 0, 0),
         "event": {"agentEvent": {"blob": blob}}},
        {"kind": "UserPromptEvent", "timestamp": _ms(2025, 4, 2, 14, 0, 1),
         "prompt": "Write tests for the parser"},
        {"kind": "AgentResponseEvent", "timestamp": _ms(2025, 4, 2, 14, 5, 0),
         "response": [{"type": "text", "text": "Added 12 tests."}]},
        {"kind": "AgentResponseEvent", "timestamp": _ms(2025, 4, 2, 14, 6, 0), "response": {}},
        {"kind": "UserPromptEvent", "timestamp": _ms(2025, 4, 2, 14, 7, 0), "prompt": [None]},
    ]
    (session_dir / "events.jsonl").write_text(
        "\n".join(json.dumps(event) for event in events), encoding="utf-8"
    )

    return sessions


@pytest.fixture
def tmp_kilo_dir(tmp_path):
    """Create a synthetic Kilo Code CLI data directory."""
    base = tmp_path / "kilocode" / "cli"
    workspace = base / "workspaces" / "ws-abc"
    workspace.mkdir(parents=True)
    (base / "workspaces" / "workspace-map.json").write_text(
        json.dumps({"/Users/testuser/dev/kilo-site": "ws-abc"}), encoding="utf-8"
    )
    (workspace / "session.json").write_text(
        json.dumps({"taskSessionMap": {"task-1": "kilo-session-1", "task-gone": "kilo-session-2"}}),
        encoding="utf-8",
    )

    task = base / "global" / "tasks" / "task-1"
    task.mkdir(parents=True)
    api_history = [
        {"role": "user", "content": [
            {"type": "text", "text": "Make the header sticky"},
            {"type": "text", "text": "<environment_details><model>kilo/claude-sonnet-4</model></environment_details>"},
        ]},
        {"role": "assistant", "ts": _ms(2025, 5, 5, 10, 0, 2), "content": [
            {"type": "text", "text": "Reading the stylesheet."},
            {"type": "tool_use", "id": "tool_1", "name": "read_file", "input": {"path": "styles.css"}},
        ]},
    ]
    ui_messages = [
        {"type": "say", "say": "text", "text": "Make the header sticky", "ts": _ms(2025, 5, 5, 10, 0, 0)},
        {"type": "say", "say": "api_req_started", "text": "{}", "ts": _ms(2025, 5, 5, 10, 0, 1)},
        {"type": "say", "say": "reasoning", "text": "Need position: sticky.", "ts": _ms(2025, 5, 5, 10, 0, 3)},
        {"type": "ask", "ask": "tool", "text": json.dumps({"tool": "editedExistingFile", "path": "styles.css"}),
         "ts": _ms(2025, 5, 5, 10, 0, 4)},
        {"type": "ask", "ask": "tool", "text": "not json", "ts": _ms(2025, 5, 5, 10, 0, 5)},
        {"type": "ask", "ask": "followup", "text": "Also the footer?", "ts": _ms(2025, 5, 5, 10, 0, 6)},
        {"type": "say", "say": "error", "text": "", "ts": _ms(2025, 5, 5, 10, 0, 7)},
    ]
    (task / "api_conversation_history.json").write_text(json.dumps(api_history), encoding="utf-8")
    (task / "ui_messages.json").write_text(json.dumps(ui_messages), encoding="utf-8")
    (task / "task_metadata.json").write_text(
        json.dumps({"files_in_context": [{"path": "/Users/testuser/dev/kilo-site/styles.css"}]}),
        encoding="utf-8",
    )

    return base


@pytest.fixture
def tmp_gemini_dir(tmp_path):
    """Create a synthetic Gemini CLI temp directory."""
    base = tmp_path / "gemini" / "tmp"
    project = base / "9f86d081884c7d65"
    chats = project / "chats"
    chats.mkdir(parents=True)
    (project / ".project_root").write_text("/Users/testuser/dev/gem-tool\n", encoding="utf-8")

    chat = {
        "sessionId": "gem-session-1",
        "projectHash": "9f86d081884c7d65",
        "startTime": "2025-06-01T08:00:00.000Z",
        "lastUpdated": "2025-06-01T08:10:00.000Z",
        "messages": [
            {"type": "user", "timestamp": "2025-06-01T08:00:00.000Z", "content": "Rename foo to bar in main.py"},
            {
                "type": "gemini",
                "timestamp": "2025-06-01T08:00:05.000Z",
                "model": "gemini-2.5-pro",
                "content": "Renamed.",
                "thoughts": [{"subject": "Plan", "description": "Edit main.py"}],
                "toolCalls": [{
                    "id": "replace-1",
                    "name": "replace",
                    "displayName": "Edit",
                    "status": "success",
                    "args": {"file_path": "main.py", "old_string": "foo", "new_string": "bar"},
                    "result": [{"functionResponse": {"response": {"output": "Replaced 1 occurrence"}}}],
                    "resultDisplay": {
                        "fileName": "main.py",
                        "filePath": "/Users/testuser/dev/gem-tool/main.py",
                        "fileDiff": "--- main.py\n+++ main.py\n-foo\n+bar\n",
                    },
                }],
            },
            {"type": "error", "timestamp": "2025-06-01T08:01:00.000Z", "content": "Quota exceeded"},
            {"type": "user", "timestamp": "2025-06-01T08:02:00.000Z", "content": ""},
        ],
    }
    (chats / "session-2025-06-01T08-00-gem1.json").write_text(json.dumps(chat), encoding="utf-8")

    # A hash directory without .project_root is ignored
    (base / "orphan" / "chats").mkdir(parents=True)

    return base
