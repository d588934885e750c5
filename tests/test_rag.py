"""
Tests for retrieval: chunking, vector store, RAG service.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from oncall_agent.errors import RetrievalError
from oncall_agent.rag import (
    Document,
    InMemoryVectorStore,
    OpenAIEmbedder,
    RAGService,
    format_context,
    split_into_chunks,
)


def test_split_into_chunks_with_overlap():
    chunks = split_into_chunks("0123456789abcdefghij", 10, 2)

    assert chunks == ["0123456789", "89abcdefgh", "ghij"]


def test_split_into_chunks_exact_fit():
    assert split_into_chunks("0123456789", 10, 0) == ["0123456789"]
    assert split_into_chunks("0123456789", 5, 0) == ["01234", "56789"]


def test_split_into_chunks_non_positive_size():
    assert split_into_chunks("anything", 0) == ["anything"]


def test_split_into_chunks_counts_characters():
    assert split_into_chunks("日本語テキスト", 3, 1) == ["日本語", "語テキ", "キスト"]


def test_split_into_chunks_invalid_overlap():
    with pytest.raises(ValueError):
        split_into_chunks("abc", 2, 2)


def test_format_context():
    docs = [
        Document(id="a", content="Restart the pod", metadata={"source": "runbook.md"}),
        Document(id="b", content="Check disk usage"),
    ]

    text = format_context(docs)

    assert text == "[1] Restart the pod\n   source: runbook.md\n\n[2] Check disk usage\n"


@pytest.mark.asyncio
async def test_vector_store_search_orders_by_similarity():
    store = InMemoryVectorStore()
    await store.insert(
        [Document(id="x", content="x"), Document(id="y", content="y")],
        [[1.0, 0.0], [0.0, 1.0]],
    )

    results = await store.search([0.9, 0.1], top_k=2)

    assert [d.id for d in results] == ["x", "y"]
    assert results[0].score > results[1].score


@pytest.mark.asyncio
async def test_vector_store_upsert_and_delete():
    store = InMemoryVectorStore()
    await store.insert([Document(id="x", content="old")], [[1.0, 0.0]])
    await store.insert([Document(id="x", content="new")], [[0.0, 1.0]])

    assert len(store) == 1
    results = await store.search([0.0, 1.0], top_k=1)
    assert results[0].content == "new"

    await store.delete(["x"])
    assert len(store) == 0
    assert await store.search([0.0, 1.0], top_k=1) == []


@pytest.mark.asyncio
async def test_vector_store_rejects_mismatched_lengths():
    store = InMemoryVectorStore()

    with pytest.raises(ValueError):
        await store.insert([Document(id="x", content="x")], [])


def make_embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=[1.0, 0.0])
    embedder.embed_batch = AsyncMock(side_effect=lambda texts: [[1.0, float(i)] for i in range(len(texts))])
    return embedder


@pytest.mark.asyncio
async def test_index_document_ids_and_metadata():
    store = MagicMock()
    store.insert = AsyncMock()
    service = RAGService(make_embedder(), store, chunk_size=10, chunk_overlap=2)

    docs = await service.index_document("0123456789abcdefghij", {"source": "runbook"})

    assert [d.id for d in docs] == ["runbook_0", "runbook_1", "runbook_2"]
    assert all(d.metadata == {"source": "runbook"} for d in docs)
    inserted_docs, vectors = store.insert.await_args.args
    assert len(inserted_docs) == len(vectors) == 3


@pytest.mark.asyncio
async def test_retrieve_overfetches_and_trims():
    store = MagicMock()
    store.search = AsyncMock(return_value=[Document(id=str(i), content=str(i)) for i in range(6)])
    service = RAGService(make_embedder(), store)

    docs = await service.retrieve("api down", top_k=3)

    store.search.assert_awaited_once_with([1.0, 0.0], 6)
    assert [d.id for d in docs] == ["0", "1", "2"]


@pytest.mark.asyncio
async def test_retrieve_uses_reranker():
    store = MagicMock()
    candidates = [Document(id=str(i), content=str(i)) for i in range(4)]
    store.search = AsyncMock(return_value=candidates)
    reranker = MagicMock()
    reranker.rerank = AsyncMock(return_value=list(reversed(candidates)))
    service = RAGService(make_embedder(), store, reranker=reranker)

    docs = await service.retrieve("q", top_k=2)

    assert [d.id for d in docs] == ["3", "2"]


@pytest.mark.asyncio
async def test_retrieve_reranker_failure_falls_back():
    store = MagicMock()
    store.search = AsyncMock(return_value=[Document(id=str(i), content=str(i)) for i in range(4)])
    reranker = MagicMock()
    reranker.rerank = AsyncMock(side_effect=RuntimeError("reranker down"))
    service = RAGService(make_embedder(), store, reranker=reranker)

    docs = await service.retrieve("q", top_k=2)

    assert [d.id for d in docs] == ["0", "1"]


@pytest.mark.asyncio
async def test_retrieve_embedding_failure_raises():
    embedder = make_embedder()
    embedder.embed = AsyncMock(side_effect=RuntimeError("quota"))
    service = RAGService(embedder, MagicMock())

    with pytest.raises(RetrievalError) as exc_info:
        await service.retrieve("q")

    assert exc_info.value.code == "RAG_FAILED"


@pytest.mark.asyncio
async def test_openai_embedder_caches():
    embedder = OpenAIEmbedder(api_key="test")
    response = MagicMock()
    response.data = [MagicMock(embedding=[0.1, 0.2])]
    embedder.client = MagicMock()
    embedder.client.embeddings.create = AsyncMock(return_value=response)

    first = await embedder.embed("hello")
    second = await embedder.embed("hello")

    assert first == second == [0.1, 0.2]
    embedder.client.embeddings.create.assert_awaited_once()


@pytest.mark.asyncio
async def test_index_directory_uses_relative_sources(tmp_path):
    (tmp_path / "runbooks").mkdir()
    (tmp_path / "runbooks" / "oom.md").write_text("Raise the memory limit", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("Disk alerts fire at 90%", encoding="utf-8")
    (tmp_path / "empty.md").write_text("   ", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")
    store = InMemoryVectorStore()
    service = RAGService(make_embedder(), store, chunk_size=100, chunk_overlap=0)

    chunks = await service.index_directory(tmp_path)

    assert chunks == 2
    assert len(store) == 2
    sources = {d.metadata["source"] for d in await store.search([1.0, 0.0], top_k=5)}
    assert sources == {"runbooks/oom.md", "notes.txt"}


@pytest.mark.asyncio
async def test_index_directory_missing_path(tmp_path):
    service = RAGService(make_embedder(), InMemoryVectorStore())

    with pytest.raises(FileNotFoundError):
        await service.index_directory(tmp_path / "nope")
