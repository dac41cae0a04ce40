"""Tests for the Gemini CLI backend."""

from unittest.mock import patch

from aichat_vault.backends.gemini import GeminiProvider
from aichat_vault.core import (
    AssistantText,
    AssistantThinking,
    DiffBlock,
    InfoMessage,
    MarkdownBlock,
    ToolResult,
    ToolResultMessage,
    ToolUse,
    UserMessage,
)

DIFF = "--- main.py\n+++ main.py\n-foo\n+bar\n"


class TestGeminiProvider:
    """Tests for GeminiProvider."""

    def test_list_sessions(self, tmp_gemini_dir):
        provider = GeminiProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_gemini_dir):
            sessions = provider.list_sessions()

        # The hash directory without .project_root is ignored
        assert len(sessions) == 1
        s = sessions[0]
        assert s.session_id == "gem-session-1"
        assert s.project_path == "/Users/testuser/dev/gem-tool"
        assert s.created == "2025-06-01T08:00:00.000Z"
        assert s.updated == "2025-06-01T08:10:00.000Z"
        assert s.extra == {"project_hash": "9f86d081884c7d65"}

    def test_parse_session(self, tmp_gemini_dir):
        provider = GeminiProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_gemini_dir):
            detail = provider.parse_session(provider.list_sessions()[0])

        kinds = [type(m) for m in detail.messages]
        assert kinds == [
            UserMessage, AssistantThinking, ToolUse, ToolResultMessage, AssistantText, InfoMessage, InfoMessage,
        ]

        assert detail.messages[1].thinking == "[Plan]\nEdit main.py"

        tool = detail.messages[2]
        assert tool.tool_name == "Edit"
        assert tool.input == {"file_path": "main.py", "old_string": "foo", "new_string": "bar"}
        assert tool.results == [
            ToolResult("Replaced 1 occurrence", False, "replace-1"),
            ToolResult(DIFF, False, "replace-1"),
        ]

        diff = detail.messages[3]
        assert diff.tool_call_id is None
        assert diff.output == [DiffBlock("", DIFF, "/Users/testuser/dev/gem-tool/main.py")]

        assert detail.messages[4].content == [MarkdownBlock("Renamed.")]
        assert detail.messages[5].title == "error"
        assert detail.messages[6].style == "error"

    def test_parse_session_metadata(self, tmp_gemini_dir):
        provider = GeminiProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_gemini_dir):
            info = provider.list_sessions()[0]
            detail = provider.parse_session(info)

        assert detail.title == "Rename foo to bar in main.py"
        assert detail.metadata.models == [("gemini-2.5-pro", 1)]
        assert detail.metadata.created == "2025-06-01T08:00:00.000Z"
        assert provider.resolve_project_path(info, detail) == "/Users/testuser/dev/gem-tool"
