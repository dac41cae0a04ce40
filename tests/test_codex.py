"""Tests for the Codex backend."""

import os
import shutil
from pathlib import Path
from unittest.mock import patch

from aichat_vault.backends.codex import CodexProvider, extract_session_id
from aichat_vault.core import AssistantText, AssistantThinking, ToolResult, ToolUse, UserMessage

SESSION_ID = "0199a1b2-c3d4-7e5f-8a9b-0c1d2e3f4a5b"


class TestCodexProvider:
    """Tests for CodexProvider."""

    def test_is_available(self, tmp_codex_dir, tmp_path):
        provider = CodexProvider()
        with patch.object(provider, "get_base_paths", return_value=[tmp_path / "missing", tmp_codex_dir]):
            assert provider.is_available() is True
        with patch.object(provider, "get_base_paths", return_value=[tmp_path / "missing"]):
            assert provider.is_available() is False

    def test_list_sessions(self, tmp_codex_dir):
        provider = CodexProvider()
        with patch.object(provider, "get_base_paths", return_value=[tmp_codex_dir]):
            sessions = provider.list_sessions()

        assert [s.session_id for s in sessions] == [SESSION_ID]
        assert sessions[0].project_path is None

    def test_newest_copy_wins(self, tmp_codex_dir, tmp_path):
        original = next(tmp_codex_dir.rglob("rollout-*.jsonl"))
        other_root = tmp_path / "jetbrains" / "sessions"
        copy_dir = other_root / original.parent.relative_to(tmp_codex_dir)
        copy_dir.mkdir(parents=True)
        copy = Path(shutil.copy(original, copy_dir / original.name))
        stat = original.stat()
        os.utime(original, (stat.st_atime, stat.st_mtime - 100))
        os.utime(copy, (stat.st_atime, stat.st_mtime + 100))

        provider = CodexProvider()
        with patch.object(provider, "get_base_paths", return_value=[tmp_codex_dir, other_root]):
            sessions = provider.list_sessions()

        assert len(sessions) == 1
        assert sessions[0].path == copy

    def test_parse_session(self, tmp_codex_dir):
        provider = CodexProvider()
        with patch.object(provider, "get_base_paths", return_value=[tmp_codex_dir]):
            info = provider.list_sessions()[0]
            detail = provider.parse_session(info)

        kinds = [type(m) for m in detail.messages]
        assert kinds == [UserMessage, AssistantThinking, ToolUse, ToolUse, AssistantText]

        shell, patch_call = detail.messages[2], detail.messages[3]
        assert shell.tool_name == "shell"
        assert shell.input == {"command": '["ls", "src"]'}
        assert shell.results == [ToolResult("main.py\nutil.py", False, "call_a")]
        assert patch_call.tool_name == "apply_patch"
        assert patch_call.input == {"input": "*** Begin Patch\n*** End Patch"}
        assert patch_call.results == [ToolResult("Success. Updated 1 file", False, "call_b")]

        assert detail.title == "List the files in src"

    def test_parse_session_metadata(self, tmp_codex_dir):
        provider = CodexProvider()
        with patch.object(provider, "get_base_paths", return_value=[tmp_codex_dir]):
            info = provider.list_sessions()[0]
            detail = provider.parse_session(info)

        meta = detail.metadata
        assert meta.version == "0.40.0"
        assert meta.git_branch == "feature/x"
        assert meta.cwd == "/home/dev/codex-project"
        assert meta.models == [("gpt-5-codex", 2)]
        assert meta.created == "2025-02-01T12:00:00Z"
        assert meta.modified == "2025-02-01T12:00:09Z"
        assert meta.message_count == 7
        assert provider.resolve_project_path(info, detail) == "/home/dev/codex-project"

    def test_extract_session_id(self):
        assert extract_session_id(Path(f"rollout-2025-02-01T12-00-00-{SESSION_ID}.jsonl")) == SESSION_ID
        assert extract_session_id(Path(f"other-{SESSION_ID}.jsonl")) is None
        assert extract_session_id(Path("rollout-no-uuid.jsonl")) is None
