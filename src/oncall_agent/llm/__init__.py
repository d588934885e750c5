"""
LLM module: the generation service behind the planner and summarizer.

Providers:
- Anthropic Claude (native SDK)
- OpenAI GPT (native SDK)
- OpenRouter and other OpenAI-compatible endpoints
"""

from .base import BaseLLM, LLMMessage, LLMResponse
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "AnthropicLLM",
    "OpenAILLM",
    "create_llm",
]
