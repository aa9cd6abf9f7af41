"""Tests for cckb.core.prompt module."""

from cckb.core.extraction import SECTION_NAMES
from cckb.core.prompt import build_discovery_prompt, build_summarization_prompt


class TestSummarizationPrompt:
    """Tests for build_summarization_prompt."""

    def test_conversation_appended(self):
        """The session log follows the instructions."""
        prompt = build_summarization_prompt("[USER][t]\nhello\n---\n")

        assert prompt.endswith("CONVERSATION LOG:\n[USER][t]\nhello\n---\n")

    def test_asks_for_every_section(self):
        """The prompt requests all four sections the parser understands."""
        prompt = build_summarization_prompt("log")

        for name in SECTION_NAMES:
            assert f"## {name.capitalize()}" in prompt
        assert "- **Affected Files**:" in prompt


class TestDiscoveryPrompt:
    """Tests for build_discovery_prompt."""

    def test_project_context(self):
        """Languages and project type are filled in."""
        prompt = build_discovery_prompt("===== FILE: a.ts =====", ["typescript", "javascript"], "node")

        assert "- Language(s): typescript, javascript" in prompt
        assert "- Project Type: node" in prompt
        assert "===== FILE: a.ts =====" in prompt

    def test_unknown_defaults(self):
        """Missing languages and type read as unknown."""
        prompt = build_discovery_prompt("code", [], "")

        assert "- Language(s): unknown" in prompt
        assert "- Project Type: unknown" in prompt

    def test_braces_in_source_survive(self):
        """Source text with format braces is inserted verbatim."""
        source = "function f() { return {a: 1}; }"

        assert source in build_discovery_prompt(source, ["javascript"], "node")
