"""
Builds the retrieval service from configuration.
"""

from ..config import Settings
from .embeddings import OpenAIEmbedder
from .service import RAGService
from .vectorstore import InMemoryVectorStore


def create_rag_service(settings: Settings) -> RAGService:
    """OpenAI embeddings over an in-memory vector store."""
    return RAGService(
        embedder=OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            base_url=settings.llm_base_url or None,
        ),
        vector_store=InMemoryVectorStore(),
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
