"""
Builds the generation service client from configuration.
"""

import structlog

from ..config import LLMConfig, Settings
from .base import BaseLLM
from .anthropic import AnthropicLLM
from .openai import OpenAILLM

logger = structlog.get_logger()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# provider -> (client class, endpoint used when none is configured)
PROVIDERS: dict[str, tuple[type[BaseLLM], str | None]] = {
    "anthropic": (AnthropicLLM, None),
    "openai": (OpenAILLM, None),
    "openrouter": (OpenAILLM, OPENROUTER_BASE_URL),
}


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create the LLM client for ``config``, or for the default provider in ``settings``.

    OpenRouter and other OpenAI-compatible gateways go through ``OpenAILLM``.
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    try:
        llm_class, default_base_url = PROVIDERS[config.provider]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {config.provider}") from None

    if not config.api_key:
        logger.warning("No API key configured for LLM provider", provider=config.provider)

    return llm_class(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url or default_base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
