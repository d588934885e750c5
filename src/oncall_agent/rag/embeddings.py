"""
OpenAI embeddings with an in-process cache.
"""

import hashlib
from typing import Sequence

import structlog
from openai import AsyncOpenAI

logger = structlog.get_logger()


class OpenAIEmbedder:
    """Embedder backed by the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
    ):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self._cache: dict[str, list[float]] = {}

    @staticmethod
    def _hash_text(text: str) -> str:
        return hashlib.md5(text.encode()).hexdigest()

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts in one API call, skipping cached ones."""
        if not texts:
            return []

        results: list[list[float] | None] = []
        pending: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = self._cache.get(self._hash_text(text))
            results.append(cached)
            if cached is None:
                pending.append((i, text))

        if pending:
            response = await self.client.embeddings.create(
                model=self.model,
                input=[text for _, text in pending],
            )
            for (index, text), item in zip(pending, response.data):
                results[index] = item.embedding
                self._cache[self._hash_text(text)] = item.embedding

            logger.debug("Generated embeddings", count=len(pending), cached=len(texts) - len(pending))

        return [r for r in results if r is not None]

    def clear_cache(self) -> None:
        self._cache.clear()
