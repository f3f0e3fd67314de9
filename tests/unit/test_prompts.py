"""Unit tests for prompt construction."""

from blockwise.models.config import AgentConfig
from blockwise.models.protocol import AgentRequest, HistoryEntry, SessionMode
from blockwise.services.prompts import (
    build_agent_system_prompt,
    build_ask_system_prompt,
    build_messages,
)


def make_request(**overrides):
    values = {
        "message": "Tighten the intro",
        "document_context": "[ID:blk_a] Hello",
        "document_title": "notes",
    }
    values.update(overrides)
    return AgentRequest(**values)


class TestAgentPrompt:
    """Test the agent system prompt."""

    def test_contains_document_and_limit(self):
        """Test the document section and the edit limit are included."""
        prompt = build_agent_system_prompt(make_request(max_edits_per_iteration=7), AgentConfig())

        assert 'CURRENT DOCUMENT "notes":' in prompt
        assert "[ID:blk_a] Hello" in prompt
        assert "7" in prompt
        assert "=== ITERATION" not in prompt
        assert "CONTEXT SUMMARY" not in prompt

    def test_continuation_section(self):
        """Test follow-up iterations include the previous reply."""
        request = make_request(iteration=3, continue_from='{"response": "step 2"}')

        prompt = build_agent_system_prompt(request, AgentConfig())

        assert "=== ITERATION 3 ===" in prompt
        assert '{"response": "step 2"}' in prompt

    def test_summary_section(self):
        """Test the context summary is embedded."""
        prompt = build_agent_system_prompt(make_request(context_summary="Original request: x"), AgentConfig())

        assert "=== CONTEXT SUMMARY (earlier iterations) ===" in prompt
        assert "Original request: x" in prompt

    def test_document_truncated(self):
        """Test the document is cut to the configured size."""
        request = make_request(document_context="x" * 5000)

        prompt = build_agent_system_prompt(request, AgentConfig(max_context_chars=1000))

        assert "x" * 1000 in prompt
        assert "x" * 1001 not in prompt


class TestAskPrompt:
    """Test the ask-mode prompt."""

    def test_ask_prompt(self):
        """Test ask mode shows the document without edit instructions."""
        prompt = build_ask_system_prompt(make_request(mode=SessionMode.ASK), AgentConfig())

        assert "[ID:blk_a] Hello" in prompt
        assert "hasMore" not in prompt


class TestBuildMessages:
    """Test chat message assembly."""

    def test_order(self):
        """Test system prompt, history, then the user message."""
        history = [HistoryEntry(role="user", content="Q"), HistoryEntry(role="assistant", content="A")]

        messages = build_messages(make_request(history=history), AgentConfig())

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Tighten the intro"

    def test_history_limit(self):
        """Test only the most recent history entries are sent."""
        history = [HistoryEntry(role="user", content=str(n)) for n in range(6)]

        messages = build_messages(make_request(history=history), AgentConfig(history_limit=2))

        assert [m["content"] for m in messages[1:-1]] == ["4", "5"]

    def test_summary_history_limit(self):
        """Test a smaller window is used alongside a summary."""
        history = [HistoryEntry(role="user", content=str(n)) for n in range(6)]
        request = make_request(history=history, context_summary="summary")

        messages = build_messages(request, AgentConfig(summary_history_limit=1))

        assert [m["content"] for m in messages[1:-1]] == ["5"]

    def test_ask_mode_uses_ask_prompt(self):
        """Test ask requests get the ask system prompt."""
        messages = build_messages(make_request(mode=SessionMode.ASK), AgentConfig())

        assert messages[0]["content"].startswith("You are a helpful writing assistant")
