"""
OpenAI GPT LLM provider (also works with OpenRouter and compatible APIs).
"""

from typing import Any, AsyncIterator

import openai
import structlog

from ..errors import LLMError
from .base import BaseLLM, LLMMessage, LLMResponse

logger = structlog.get_logger()


class OpenAILLM(BaseLLM):
    """OpenAI GPT LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _build_kwargs(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None,
    ) -> dict[str, Any]:
        converted: list[dict[str, Any]] = [
            {"role": msg.role, "content": msg.content} for msg in messages
        ]
        if system_prompt:
            converted.insert(0, {"role": "system", "content": system_prompt})

        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": converted,
        }

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        kwargs = self._build_kwargs(messages, system_prompt)

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e), model=self.model)
            raise LLMError("OpenAI request failed", cause=e) from e

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=response.model,
            stop_reason=choice.finish_reason,
            raw_response=response,
        )

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from GPT."""
        kwargs = self._build_kwargs(messages, system_prompt)
        kwargs["stream"] = True

        try:
            stream = await self.client.chat.completions.create(**kwargs)

            async for chunk in stream:  # type: ignore
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content

        except openai.APIError as e:
            logger.error("OpenAI streaming error", error=str(e), model=self.model)
            raise LLMError("OpenAI streaming failed", cause=e) from e
