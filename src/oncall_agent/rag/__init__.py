"""
Retrieval augmentation: chunking, embeddings, vector search.
"""

from .service import (
    Document,
    Embedder,
    RAGService,
    Reranker,
    Retriever,
    VectorStore,
    format_context,
    split_into_chunks,
)
from .embeddings import OpenAIEmbedder
from .factory import create_rag_service
from .vectorstore import InMemoryVectorStore

__all__ = [
    "Document",
    "Embedder",
    "RAGService",
    "Reranker",
    "Retriever",
    "VectorStore",
    "format_context",
    "split_into_chunks",
    "OpenAIEmbedder",
    "InMemoryVectorStore",
    "create_rag_service",
]
