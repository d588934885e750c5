"""
Base classes for LLM providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Literal


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None


class BaseLLM(ABC):
    """Base class for LLM providers.

    Providers raise ``LLMError`` on failure; an empty completion is returned
    as an empty string, never as an error.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from the LLM."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass

    async def complete(self, prompt: str, system_prompt: str | None = None) -> str:
        """Generate text for a single user prompt."""
        response = await self.generate(
            messages=[LLMMessage(role="user", content=prompt)],
            system_prompt=system_prompt,
        )
        return response.content

    async def generate_with_history(self, messages: list[LLMMessage]) -> str:
        """Generate text for a full message history (system messages included)."""
        response = await self.generate(messages=messages)
        return response.content

    async def complete_streaming(
        self,
        prompt: str,
        on_chunk: Callable[[str], Awaitable[None]],
        system_prompt: str | None = None,
    ) -> str:
        """Stream a single-prompt completion into ``on_chunk``; returns the full text."""
        parts: list[str] = []
        async for chunk in self.stream(
            messages=[LLMMessage(role="user", content=prompt)],
            system_prompt=system_prompt,
        ):
            parts.append(chunk)
            await on_chunk(chunk)
        return "".join(parts)
