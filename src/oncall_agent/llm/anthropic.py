"""
Anthropic Claude LLM provider.
"""

from typing import Any, AsyncIterator

import anthropic
import structlog

from ..errors import LLMError
from .base import BaseLLM, LLMMessage, LLMResponse

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _build_kwargs(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None,
    ) -> dict[str, Any]:
        # Claude takes the system prompt out of band; inline system messages are merged into it.
        system_parts = [system_prompt] if system_prompt else []
        converted: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                converted.append({"role": msg.role, "content": msg.content})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": converted,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        return kwargs

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs = self._build_kwargs(messages, system_prompt)

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e), model=self.model)
            raise LLMError("Anthropic request failed", cause=e) from e

        content = "".join(block.text for block in response.content if block.type == "text")

        return LLMResponse(
            content=content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            stop_reason=response.stop_reason,
            raw_response=response,
        )

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from Claude."""
        kwargs = self._build_kwargs(messages, system_prompt)

        try:
            async with self.client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text

        except anthropic.APIError as e:
            logger.error("Anthropic streaming error", error=str(e), model=self.model)
            raise LLMError("Anthropic streaming failed", cause=e) from e
