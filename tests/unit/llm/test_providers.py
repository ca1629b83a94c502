"""Tests for LLM providers and configuration."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from powermem_core.llm import (
    JSON_OBJECT_FORMAT,
    LLMConfig,
    LLMProviderError,
    OpenAIProvider,
    create_llm_provider,
)
from powermem_core.llm.base import LLMRequest
from tests.mocks.llm.mock_provider import ScriptedProvider


def completion(content="ok", tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        id="resp-1",
        model="gpt-4o-mini",
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=1, total_tokens=4),
    )


@pytest.fixture
def provider():
    provider = OpenAIProvider({"api_key": "sk-test", "model": "gpt-4o-mini", "max_tokens": 100})
    provider.client = MagicMock()
    provider.client.chat.completions.create = AsyncMock(return_value=completion())
    return provider


class TestLLMConfig:
    def test_validate(self):
        assert LLMConfig().validate()
        assert not LLMConfig(temperature=3.0).validate()
        assert not LLMConfig(max_tokens=0).validate()
        assert not LLMConfig(model="").validate()

    def test_to_dict_merges_provider_config(self):
        config = LLMConfig(api_key="k", provider_config={"organization": "org"})
        data = config.to_dict()
        assert data["api_key"] == "k"
        assert data["organization"] == "org"
        assert "retry_delay" not in data

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("POWERMEM_LLM_MODEL", "qwen-plus")
        monkeypatch.setenv("POWERMEM_LLM_MAX_TOKENS", "")
        monkeypatch.setenv("POWERMEM_LLM_API_KEY", "secret")

        config = LLMConfig.from_env()

        assert config.model == "qwen-plus"
        assert config.max_tokens is None
        assert config.api_key == "secret"


class TestOpenAIProvider:
    """Chat completions wrapper."""

    @pytest.mark.asyncio
    async def test_generate_response(self, provider):
        text = await provider.generate_response(
            [{"role": "user", "content": "hi"}], response_format=JSON_OBJECT_FORMAT
        )

        assert text == "ok"
        provider.client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=[{"role": "user", "content": "hi"}],
            temperature=0.1,
            max_tokens=100,
            response_format={"type": "json_object"},
        )

    @pytest.mark.asyncio
    async def test_api_failure_raises_provider_error(self, provider):
        provider.client.chat.completions.create.side_effect = RuntimeError("boom")

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate_response([{"role": "user", "content": "hi"}])

        assert "boom" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_request_is_not_sent(self, provider):
        response = await provider.generate(LLMRequest(messages=[], model="gpt-4o-mini"))

        assert not response.success
        provider.client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tool_calls_are_parsed(self, provider):
        call = SimpleNamespace(id="c1", function=SimpleNamespace(name="add_memory", arguments='{"text": "x"}'))
        broken = SimpleNamespace(id="c2", function=SimpleNamespace(name="noop", arguments="not json"))
        provider.client.chat.completions.create.return_value = completion(content=None, tool_calls=[call, broken])

        response = await provider.generate_with_tools([{"role": "user", "content": "hi"}], tools=[{"type": "function"}])

        assert response.content == ""
        assert [(c.name, c.arguments, c.id) for c in response.tool_calls] == [
            ("add_memory", {"text": "x"}, "c1"),
            ("noop", {}, "c2"),
        ]
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["tool_choice"] == "auto"


class TestScriptedProvider:
    @pytest.mark.asyncio
    async def test_queue_and_failure(self):
        llm = ScriptedProvider([{"facts": ["a"]}])

        assert await llm.generate_response([{"role": "user", "content": "x"}]) == '{"facts": ["a"]}'
        assert await llm.generate_response([{"role": "user", "content": "y"}]) == "{}"
        assert llm.last_prompt == "y"

        llm.fail_with = "down"
        with pytest.raises(LLMProviderError):
            await llm.generate_response([{"role": "user", "content": "z"}])


class TestCreateLLMProvider:
    def test_openai_compatible_aliases(self):
        for name in ("openai", "Qwen", "deepseek"):
            provider = create_llm_provider(LLMConfig(provider=name, api_key="sk-test"))
            assert isinstance(provider, OpenAIProvider)

    def test_unknown(self):
        with pytest.raises(LLMProviderError):
            create_llm_provider(LLMConfig(provider="anthropic-vertex"))
