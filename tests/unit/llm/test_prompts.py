"""Tests for the prompt manager."""

import json
from datetime import date

import pytest

from powermem_core.llm.prompts.manager import FACT_RETRIEVAL, PromptManager


@pytest.fixture
def prompts():
    return PromptManager()


class TestFactRetrievalPrompt:
    def test_builtin_includes_today(self, prompts):
        prompt = prompts.fact_retrieval_prompt()

        assert date.today().isoformat() in prompt
        assert '{"facts": ["fact1", "fact2"]}' in prompt

    def test_custom_prompt_wins(self, prompts):
        assert prompts.fact_retrieval_prompt("Only names.") == "Only names."
        assert prompts.fact_retrieval_prompt("   ") != "   "


class TestMemoryUpdatePrompt:
    """Decision request layout."""

    def test_lists_memory_and_facts(self, prompts):
        old = [{"id": "0", "text": "用户喜欢茶"}]

        prompt = prompts.memory_update_prompt(old, ["User likes green tea", "", "User lives in Paris"])

        assert "Current memory:\n```\n" + json.dumps(old, ensure_ascii=False) in prompt
        assert "- User likes green tea\n- User lives in Paris\n" in prompt
        assert '"memory": [' in prompt
        assert "$" not in prompt

    def test_empty_memory(self, prompts):
        prompt = prompts.memory_update_prompt([], ["fact"])
        assert "Current memory is empty." in prompt

    def test_custom_instructions(self, prompts):
        prompt = prompts.memory_update_prompt([], ["fact"], "Decide carefully.\n")

        assert prompt.startswith("Decide carefully.\n")
        assert "You are a memory manager" not in prompt


class TestTemplates:
    def test_directory_override(self, temp_dir):
        (temp_dir / f"{FACT_RETRIEVAL}.txt").write_text("Custom for $today", encoding="utf-8")

        prompt = PromptManager(str(temp_dir)).fact_retrieval_prompt()

        assert prompt == f"Custom for {date.today().isoformat()}"

    def test_missing_placeholders_are_left(self, prompts):
        assert "$today" in prompts.get_prompt(FACT_RETRIEVAL)

    def test_unknown_template(self, prompts):
        with pytest.raises(ValueError):
            prompts.get_prompt("nope")
