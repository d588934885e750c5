"""
Tests for LLM providers and factory.
"""

import httpx
import openai
import pytest
from unittest.mock import AsyncMock, MagicMock

from oncall_agent.config import LLMConfig
from oncall_agent.errors import LLMError, UpstreamError
from oncall_agent.llm import AnthropicLLM, LLMMessage, OpenAILLM, create_llm


def test_create_llm_routes_providers():
    assert isinstance(create_llm(LLMConfig(provider="anthropic", api_key="k")), AnthropicLLM)
    assert isinstance(create_llm(LLMConfig(provider="openai", api_key="k")), OpenAILLM)

    router = create_llm(LLMConfig(provider="openrouter", api_key="k"))
    assert isinstance(router, OpenAILLM)
    assert router.base_url == "https://openrouter.ai/api/v1"


def test_openai_kwargs_prepend_system_prompt():
    llm = OpenAILLM(api_key="k", model="gpt-4o-mini")

    kwargs = llm._build_kwargs([LLMMessage(role="user", content="hi")], "be brief")

    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
    assert kwargs["messages"][1] == {"role": "user", "content": "hi"}


def test_anthropic_kwargs_merge_system_messages():
    llm = AnthropicLLM(api_key="k")

    kwargs = llm._build_kwargs(
        [LLMMessage(role="system", content="ops context"), LLMMessage(role="user", content="hi")],
        "be brief",
    )

    assert kwargs["system"] == "be brief\n\nops context"
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_openai_complete_returns_text():
    llm = OpenAILLM(api_key="k")
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content="pong"), finish_reason="stop")]
    response.usage = None
    response.model = "gpt-4o"
    llm.client = MagicMock()
    llm.client.chat.completions.create = AsyncMock(return_value=response)

    assert await llm.complete("ping") == "pong"


@pytest.mark.asyncio
async def test_openai_empty_content_is_empty_string():
    llm = OpenAILLM(api_key="k")
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=None), finish_reason="stop")]
    response.usage = None
    llm.client = MagicMock()
    llm.client.chat.completions.create = AsyncMock(return_value=response)

    result = await llm.generate([LLMMessage(role="user", content="ping")])

    assert result.content == ""


@pytest.mark.asyncio
async def test_openai_api_error_becomes_llm_error():
    llm = OpenAILLM(api_key="k")
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    llm.client = MagicMock()
    llm.client.chat.completions.create = AsyncMock(
        side_effect=openai.APIConnectionError(request=request)
    )

    with pytest.raises(LLMError) as exc_info:
        await llm.complete("ping")

    assert isinstance(exc_info.value, UpstreamError)
    assert isinstance(exc_info.value.__cause__, openai.APIConnectionError)
