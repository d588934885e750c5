"""
In-memory vector store using cosine similarity.

Suitable for a single process and a few thousand chunks. Swap in an
external vector database behind the same interface for anything larger.
"""

import threading
from dataclasses import replace

import numpy as np
import structlog

from .service import Document

logger = structlog.get_logger()


class InMemoryVectorStore:
    """Vector store held in a numpy matrix."""

    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._ids: list[str] = []
        self._matrix: np.ndarray | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    async def insert(self, docs: list[Document], vectors: list[list[float]]) -> None:
        if len(docs) != len(vectors):
            raise ValueError("docs and vectors must have the same length")
        if not docs:
            return

        with self._lock:
            for doc, vector in zip(docs, vectors):
                row = np.asarray(vector, dtype=float)
                if doc.id in self._documents:
                    index = self._ids.index(doc.id)
                    self._matrix[index] = row
                else:
                    self._ids.append(doc.id)
                    self._matrix = row[np.newaxis, :] if self._matrix is None else np.vstack([self._matrix, row])
                self._documents[doc.id] = doc

        logger.debug("Inserted vectors", count=len(docs))

    async def search(self, vector: list[float], top_k: int) -> list[Document]:
        with self._lock:
            if self._matrix is None or not self._ids:
                return []
            matrix = self._matrix
            ids = list(self._ids)
            documents = dict(self._documents)

        query = np.asarray(vector, dtype=float)
        query_norm = np.linalg.norm(query) or 1.0
        doc_norms = np.linalg.norm(matrix, axis=1)
        doc_norms = np.where(doc_norms == 0, 1, doc_norms)

        similarities = matrix @ query / (doc_norms * query_norm)
        order = np.argsort(-similarities)[:top_k]

        return [replace(documents[ids[i]], score=float(similarities[i])) for i in order]

    async def delete(self, ids: list[str]) -> None:
        doomed = set(ids)
        with self._lock:
            keep = [i for i, doc_id in enumerate(self._ids) if doc_id not in doomed]
            if len(keep) == len(self._ids):
                return
            for doc_id in doomed:
                self._documents.pop(doc_id, None)
            self._ids = [self._ids[i] for i in keep]
            self._matrix = self._matrix[keep] if keep else None
