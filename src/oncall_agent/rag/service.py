"""
Retrieval-augmented generation service.

Indexing splits a document into overlapping character windows, embeds them
and writes them to the vector store. Retrieval embeds the query, over-fetches
candidates for the optional reranker and trims to ``top_k``.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

import structlog

from ..errors import RetrievalError

logger = structlog.get_logger()

KNOWLEDGE_PATTERNS = ("*.md", "*.txt")


@dataclass
class Document:
    """A retrievable chunk of knowledge."""

    id: str
    content: str
    metadata: dict[str, str] = field(default_factory=dict)
    score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": dict(self.metadata),
            "score": self.score,
        }


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]:
        ...

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class VectorStore(Protocol):
    async def insert(self, docs: list[Document], vectors: list[list[float]]) -> None:
        ...

    async def search(self, vector: list[float], top_k: int) -> list[Document]:
        ...

    async def delete(self, ids: list[str]) -> None:
        ...


class Reranker(Protocol):
    async def rerank(self, query: str, docs: list[Document], top_k: int) -> list[Document]:
        ...


class Retriever(Protocol):
    """What the agent needs from retrieval."""

    async def retrieve(self, query: str, top_k: int) -> list[Document]:
        ...


def split_into_chunks(text: str, chunk_size: int, overlap: int = 0) -> list[str]:
    """Split text into windows of ``chunk_size`` characters.

    Windows advance by ``chunk_size - overlap``; the last window ends exactly
    at the end of the input. A non-positive ``chunk_size`` returns the text
    as a single chunk.
    """
    if chunk_size <= 0:
        return [text]
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    step = chunk_size - overlap
    chunks: list[str] = []
    length = len(text)

    for start in range(0, max(length, 1), step):
        end = min(start + chunk_size, length)
        chunks.append(text[start:end])
        if end == length:
            break

    return chunks


def format_context(docs: Sequence[Document]) -> str:
    """Render retrieved documents as a numbered knowledge block."""
    lines: list[str] = []
    for i, doc in enumerate(docs, start=1):
        lines.append(f"[{i}] {doc.content}")
        source = doc.metadata.get("source")
        if source:
            lines.append(f"   source: {source}")
        lines.append("")
    return "\n".join(lines)


class RAGService:
    """Chunking, indexing and retrieval over an embedder and a vector store."""

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        reranker: Reranker | None = None,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.reranker = reranker
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split_into_chunks(self, text: str) -> list[str]:
        return split_into_chunks(text, self.chunk_size, self.chunk_overlap)

    async def index_document(self, content: str, metadata: dict[str, str] | None = None) -> list[Document]:
        """Chunk, embed and store a document. Returns the stored chunks."""
        metadata = dict(metadata or {})
        chunks = self.split_into_chunks(content)

        try:
            vectors = await self.embedder.embed_batch(chunks)
        except Exception as e:
            raise RetrievalError("embedding failed", cause=e) from e

        source = metadata.get("source", "doc")
        docs = [
            Document(id=f"{source}_{i}", content=chunk, metadata=metadata)
            for i, chunk in enumerate(chunks)
        ]

        await self.vector_store.insert(docs, vectors)
        logger.info("Indexed document", source=source, chunks=len(docs))
        return docs

    async def index_directory(
        self,
        path: str | Path,
        patterns: Sequence[str] = KNOWLEDGE_PATTERNS,
    ) -> int:
        """Index every matching file under ``path``. Returns the number of chunks stored.

        Each file is indexed with its path relative to ``path`` as the source.
        """
        root = Path(path)
        if not root.is_dir():
            raise FileNotFoundError(f"knowledge directory not found: {root}")

        files = sorted({f for pattern in patterns for f in root.rglob(pattern) if f.is_file()})
        total = 0
        for file in files:
            content = file.read_text(encoding="utf-8", errors="replace")
            if not content.strip():
                continue
            docs = await self.index_document(content, {"source": file.relative_to(root).as_posix()})
            total += len(docs)

        logger.info("Indexed knowledge directory", path=str(root), files=len(files), chunks=total)
        return total

    async def retrieve(self, query: str, top_k: int = 5) -> list[Document]:
        """Fetch the ``top_k`` most relevant documents for a query."""
        try:
            query_vector = await self.embedder.embed(query)
        except Exception as e:
            raise RetrievalError("query embedding failed", cause=e) from e

        try:
            docs = await self.vector_store.search(query_vector, top_k * 2)
        except Exception as e:
            raise RetrievalError("vector search failed", cause=e) from e

        if self.reranker is not None and docs:
            try:
                return (await self.reranker.rerank(query, docs, top_k))[:top_k]
            except Exception as e:
                logger.warning("Rerank failed, using vector order", error=str(e))

        return docs[:top_k]

    def format_context(self, docs: Sequence[Document]) -> str:
        return format_context(docs)
