"""Tests for chat providers, API key validation and token counting."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragcore.config import GenerationCfg
from ragcore.errors import ProviderError
from ragcore.rag.llm_client import (
    LocalModelProvider,
    OpenAICompatibleProvider,
    count_tokens,
    create_provider,
    validate_api_key,
)
from ragcore.rag.prompt import ChatPrompt

PROMPT = ChatPrompt(
    system_prompt="Be brief.",
    context="",
    user_message="Hi?",
    history=(("user", "Earlier"), ("assistant", "Reply")),
    temperature=0.2,
    max_tokens=50,
)


def _completion(text):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    return response


def _stream_chunk(text):
    chunk = MagicMock()
    chunk.choices = [MagicMock()]
    chunk.choices[0].delta.content = text
    return chunk


def _stream(*chunks):
    async def _gen():
        for chunk in chunks:
            yield chunk

    return _gen()


# ------------------------------------------------------------------
# validate_api_key / count_tokens
# ------------------------------------------------------------------


def test_validate_api_key_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_present(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    validate_api_key("anthropic/claude-3-haiku")


def test_validate_api_key_bare_model_means_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("gpt-4o-mini")


def test_validate_api_key_local_needs_none(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    validate_api_key("ollama/llama3")


def test_count_tokens_uses_litellm():
    with patch("ragcore.rag.llm_client.litellm.token_counter", return_value=7) as mock_counter:
        assert count_tokens("openai/gpt-4o-mini", "hello world") == 7
    mock_counter.assert_called_once_with(model="openai/gpt-4o-mini", text="hello world")


def test_count_tokens_falls_back_to_chars():
    with patch("ragcore.rag.llm_client.litellm.token_counter", side_effect=Exception("unknown")):
        assert count_tokens("mystery/model", "x" * 40) == 10
        assert count_tokens("mystery/model", "ab") == 1


def test_count_tokens_empty():
    assert count_tokens("openai/gpt-4o-mini", "") == 0


# ------------------------------------------------------------------
# OpenAICompatibleProvider
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_openai_complete_sends_role_messages():
    provider = OpenAICompatibleProvider("openai/gpt-4o-mini", num_retries=1, timeout=10)
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(return_value=_completion("Hello!")),
    ) as mock_completion:
        text = await provider.complete(PROMPT)

    assert text == "Hello!"
    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["stream"] is False
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 50
    assert kwargs["num_retries"] == 1
    assert kwargs["timeout"] == 10
    assert "api_base" not in kwargs
    assert [m["role"] for m in kwargs["messages"]] == ["system", "user", "assistant", "user"]
    assert kwargs["messages"][-1]["content"] == "Hi?"


@pytest.mark.asyncio
async def test_complete_none_content_is_empty_string():
    provider = OpenAICompatibleProvider("openai/gpt-4o-mini")
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(return_value=_completion(None)),
    ):
        assert await provider.complete(PROMPT) == ""


@pytest.mark.asyncio
async def test_complete_failure_raises_provider_error():
    provider = OpenAICompatibleProvider("openai/gpt-4o-mini")
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(side_effect=RuntimeError("429 rate limit")),
    ):
        with pytest.raises(ProviderError, match="429"):
            await provider.complete(PROMPT)


@pytest.mark.asyncio
async def test_stream_yields_non_empty_deltas():
    provider = OpenAICompatibleProvider("openai/gpt-4o-mini")
    empty = MagicMock()
    empty.choices = []
    chunks = _stream(_stream_chunk("Hel"), empty, _stream_chunk(None), _stream_chunk("lo"))
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(return_value=chunks),
    ) as mock_completion:
        deltas = [d async for d in provider.stream(PROMPT)]

    assert deltas == ["Hel", "lo"]
    assert mock_completion.call_args.kwargs["stream"] is True


@pytest.mark.asyncio
async def test_stream_failure_raises_provider_error():
    provider = OpenAICompatibleProvider("openai/gpt-4o-mini")
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(side_effect=ConnectionError("reset")),
    ):
        with pytest.raises(ProviderError, match="reset"):
            async for _ in provider.stream(PROMPT):
                pass


# ------------------------------------------------------------------
# LocalModelProvider
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    ("model", "expected"),
    [("llama3", "ollama/llama3"), ("ollama/llama3", "ollama/llama3"), ("local/mistral", "ollama/mistral")],
)
def test_local_model_prefix(model, expected):
    assert LocalModelProvider(model).model == expected


def test_local_default_api_base():
    assert LocalModelProvider("llama3").api_base == "http://localhost:11434"
    assert LocalModelProvider("llama3", api_base="http://gpu:11434").api_base == "http://gpu:11434"


@pytest.mark.asyncio
async def test_local_sends_single_transcript():
    provider = LocalModelProvider("llama3")
    with patch(
        "ragcore.rag.llm_client.litellm.acompletion",
        new=AsyncMock(return_value=_completion("ok")),
    ) as mock_completion:
        await provider.complete(PROMPT)

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["api_base"] == "http://localhost:11434"
    assert len(kwargs["messages"]) == 1
    content = kwargs["messages"][0]["content"]
    assert content.startswith("System: Be brief.")
    assert content.endswith("Human: Hi?\n\nAssistant:")


# ------------------------------------------------------------------
# create_provider
# ------------------------------------------------------------------


def test_create_provider_openai():
    provider = create_provider(GenerationCfg(provider="openai", model="openai/gpt-4o", api_base="http://gw"))
    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.api_base == "http://gw"


def test_create_provider_local():
    provider = create_provider(GenerationCfg(provider="local", model="llama3", timeout_seconds=5))
    assert isinstance(provider, LocalModelProvider)
    assert provider.timeout == 5


def test_create_provider_unknown():
    with pytest.raises(ValueError, match="Unknown generation provider"):
        create_provider(GenerationCfg(provider="carrier-pigeon"))
