"""Tests for the Amp backend."""

from unittest.mock import patch

from aichat_vault.backends.amp import AmpProvider
from aichat_vault.core import (
    AssistantText,
    AssistantThinking,
    InfoMessage,
    MarkdownBlock,
    TextBlock,
    ToolResult,
    ToolUse,
    UserMessage,
)


class TestAmpProvider:
    """Tests for AmpProvider."""

    def test_list_sessions_skips_unreadable_threads(self, tmp_amp_dir):
        provider = AmpProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_amp_dir):
            sessions = provider.list_sessions()

        assert len(sessions) == 1
        s = sessions[0]
        assert s.session_id == "T-0001"
        assert s.project_path == "/Users/testuser/dev/amp-app"
        assert s.created == "2025-03-01T09:00:00.000Z"
        assert s.updated == s.created

    def test_parse_session(self, tmp_amp_dir):
        provider = AmpProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_amp_dir):
            detail = provider.parse_session(provider.list_sessions()[0])

        kinds = [type(m) for m in detail.messages]
        assert kinds == [UserMessage, ToolUse, AssistantThinking, AssistantText, InfoMessage]

        user = detail.messages[0]
        assert user.content == [TextBlock("Add a health check endpoint")]
        assert user.timestamp == "2025-03-01T09:00:01.000Z"

        tool = detail.messages[1]
        assert tool.tool_name == "read_file"
        assert tool.input == {"path": "app.py"}
        assert tool.results == [ToolResult("app = Flask()", False, "tu_1")]
        # No sentAt: falls back to the thread creation time
        assert tool.timestamp == "2025-03-01T09:00:00.000Z"

        assert detail.messages[3].content == [MarkdownBlock("Added `/health`.")]
        assert detail.messages[4].style == "error"

    def test_parse_session_metadata(self, tmp_amp_dir):
        provider = AmpProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_amp_dir):
            info = provider.list_sessions()[0]
            detail = provider.parse_session(info)

        assert detail.session_id == "T-0001"
        assert detail.title == "Add a health check endpoint"
        assert detail.metadata.models == [("claude-sonnet-4", 2)]
        assert detail.metadata.cwd == "/Users/testuser/dev/amp-app"
        assert provider.resolve_project_path(info, detail) == "/Users/testuser/dev/amp-app"

    def test_error_status_marks_result(self, tmp_amp_dir):
        thread = tmp_amp_dir / "T-0002.json"
        thread.write_text(
            '{"created": 1740819600000, "messages": ['
            '{"role": "assistant", "content": [{"type": "tool_use", "id": "x", "name": "bash", "input": {}}]},'
            '{"role": "user", "content": [{"type": "tool_result", "toolUseID": "x",'
            ' "run": {"status": "error", "result": {"exitCode": 1}}}]}]}',
            encoding="utf-8",
        )
        provider = AmpProvider()
        with patch.object(provider, "get_base_path", return_value=tmp_amp_dir):
            info = next(s for s in provider.list_sessions() if s.session_id == "T-0002")
            detail = provider.parse_session(info)

        assert info.project_path is None
        (tool,) = detail.messages
        assert tool.results[0].is_error is True
        assert '"exitCode": 1' in tool.results[0].output
