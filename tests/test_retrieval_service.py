"""
Tests for the retrieval service: corpus sync, context assembly and graceful
degradation.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from semantic_retrieval.core.retrieval_service import (
    CONTEXT_FOOTER,
    CONTEXT_HEADER,
    RetrievalService,
    create_retrieval_service,
)
from semantic_retrieval.vector import Document, EmbeddingError, RetrievalError, SearchResult


def _mock_index(results=None):
    index = MagicMock()
    index.initialize = AsyncMock()
    index.similarity_search = AsyncMock(return_value=results or [])
    index.clear_index = AsyncMock()
    index.count = len(results or [])
    return index


def _result(name, score, text=None):
    return SearchResult(
        document=Document(id=name, text=text or f"passage from {name}", metadata={"file_name": name}),
        score=score,
    )


@pytest.fixture
def service(make_index, corpus_dir):
    return RetrievalService(vector_index=make_index(), corpus_dir=corpus_dir)


@pytest.mark.asyncio
async def test_threshold_filters_results():
    results = [_result("a.txt", 0.1), _result("b.txt", 0.4), _result("c.txt", 0.6), _result("d.txt", 0.9)]
    service = RetrievalService(vector_index=_mock_index(results))

    context = await service.generate_relevant_context("how do I calm down", k=4)

    assert context.startswith(CONTEXT_HEADER)
    assert context.endswith(CONTEXT_FOOTER)
    assert "[1] From a.txt: passage from a.txt...\n\n" in context
    assert "[2] From b.txt: passage from b.txt...\n\n" in context
    assert "c.txt" not in context
    assert "d.txt" not in context


@pytest.mark.asyncio
async def test_all_results_above_threshold_gives_empty_string():
    results = [_result("a.txt", 0.5), _result("b.txt", 0.7)]
    service = RetrievalService(vector_index=_mock_index(results))

    assert await service.generate_relevant_context("query") == ""


@pytest.mark.asyncio
async def test_snippet_is_truncated_and_source_defaults():
    long_text = "z" * 800
    result = SearchResult(document=Document(id="x", text=long_text), score=0.2)
    service = RetrievalService(vector_index=_mock_index([result]))

    context = await service.generate_relevant_context("query", k=1)

    assert f"[1] From unknown source: {'z' * 500}...\n\n" in context
    assert "z" * 501 not in context


@pytest.mark.asyncio
async def test_default_k_is_three():
    index = _mock_index([])
    service = RetrievalService(vector_index=index)

    await service.generate_relevant_context("query")

    index.similarity_search.assert_awaited_once_with("query", 3)


@pytest.mark.asyncio
async def test_context_never_raises_on_embedding_failure():
    index = _mock_index()
    index.similarity_search.side_effect = EmbeddingError("provider down")
    service = RetrievalService(vector_index=index)

    assert await service.generate_relevant_context("query") == ""


@pytest.mark.asyncio
async def test_context_never_raises_on_initialization_failure():
    index = _mock_index()
    index.initialize.side_effect = OSError("disk gone")
    service = RetrievalService(vector_index=index)

    assert await service.generate_relevant_context("query") == ""
    assert not service.is_initialized


@pytest.mark.asyncio
async def test_initialize_failure_raises_retrieval_error():
    index = _mock_index()
    index.initialize.side_effect = OSError("disk gone")
    service = RetrievalService(vector_index=index)

    with pytest.raises(RetrievalError):
        await service.initialize()


@pytest.mark.asyncio
async def test_initialize_loads_corpus(service, provider):
    await service.initialize()
    await service.initialize()

    assert service.is_initialized
    assert sorted(d.id for d in service.vector_index.documents()) == ["breathing.txt", "sleep.txt"]
    assert provider.batch_calls == 1


@pytest.mark.asyncio
async def test_unchanged_corpus_is_not_reloaded(service, make_index, corpus_dir, provider):
    await service.initialize()

    restarted = RetrievalService(vector_index=make_index(), corpus_dir=corpus_dir)
    await restarted.initialize()

    assert restarted.vector_index.count == 2
    assert provider.batch_calls == 1


@pytest.mark.asyncio
async def test_changed_corpus_file_is_replaced(service, make_index, corpus_dir):
    await service.initialize()
    (corpus_dir / "sleep.txt").write_text("Naps after lunch restore energy", encoding="utf-8")
    (corpus_dir / "journal.txt").write_text("Journaling helps process emotions", encoding="utf-8")

    restarted = RetrievalService(vector_index=make_index(), corpus_dir=corpus_dir)
    await restarted.initialize()

    documents = {d.id: d for d in restarted.vector_index.documents()}
    assert sorted(documents) == ["breathing.txt", "journal.txt", "sleep.txt"]
    assert documents["sleep.txt"].text == "Naps after lunch restore energy"

    hits = await restarted.query("Naps after lunch restore energy", k=1)
    assert hits[0].document.id == "sleep.txt"


@pytest.mark.asyncio
async def test_removed_corpus_file_is_deleted(service, make_index, corpus_dir):
    await service.initialize()
    (corpus_dir / "breathing.txt").unlink()

    restarted = RetrievalService(vector_index=make_index(), corpus_dir=corpus_dir)
    await restarted.initialize()

    assert [d.id for d in restarted.vector_index.documents()] == ["sleep.txt"]


@pytest.mark.asyncio
async def test_missing_corpus_dir_keeps_index(service, make_index, tmp_path):
    await service.initialize()

    restarted = RetrievalService(vector_index=make_index(), corpus_dir=tmp_path / "gone")
    await restarted.initialize()

    assert restarted.vector_index.count == 2


@pytest.mark.asyncio
async def test_context_from_real_index(service):
    context = await service.generate_relevant_context("slow breathing exercises calm anxiety", k=2)

    assert "[1] From breathing.txt: Slow breathing exercises" in context
    assert "sleep.txt" not in context


@pytest.mark.asyncio
async def test_add_documents_chunks_long_text(service):
    await service.initialize()

    handles = await service.add_documents([Document(id="essay", text="word " * 300)])

    assert len(handles) == 2
    ids = [service.vector_index.get_document(h).id for h in handles]
    assert ids == ["essay_chunk_1", "essay_chunk_2"]


@pytest.mark.asyncio
async def test_delete_document_pass_through(service):
    await service.initialize()

    assert await service.delete_document("sleep.txt") is True
    assert await service.delete_document("sleep.txt") is False
    assert service.vector_index.count == 1


@pytest.mark.asyncio
async def test_clear_vector_store_initializes_then_clears():
    index = _mock_index()
    service = RetrievalService(vector_index=index)

    await service.clear_vector_store()

    index.initialize.assert_awaited_once()
    index.clear_index.assert_awaited_once()


@pytest.mark.asyncio
async def test_clear_vector_store_failure_raises():
    index = _mock_index()
    index.clear_index.side_effect = OSError("read-only filesystem")
    service = RetrievalService(vector_index=index)

    with pytest.raises(RetrievalError):
        await service.clear_vector_store()


@pytest.mark.asyncio
async def test_clear_then_context_is_empty(service):
    await service.initialize()
    await service.clear_vector_store()

    assert await service.generate_relevant_context("slow breathing exercises") == ""


def test_create_retrieval_service_uses_overrides(tmp_path, provider):
    service = create_retrieval_service(
        embedding_provider=provider,
        corpus_dir=tmp_path / "corpus",
        index_dir=tmp_path / "idx",
    )

    assert service.vector_index.embedding_provider is provider
    assert service.vector_index.index_path == tmp_path / "idx" / "vector_index.bin"
    assert service.vector_index.doc_store_path == tmp_path / "idx" / "doc_store.json"
    assert service.corpus_dir == tmp_path / "corpus"
    assert service.default_k == 3
    assert service.relevance_threshold == 0.5


def test_health_reports_index_stats(service):
    health = service.health()

    assert health["status"] == "uninitialized"
    assert health["document_count"] == 0
    assert health["max_elements"] == 10000
    assert health["embedding_model"] == "hash-384"


@pytest.mark.asyncio
async def test_non_utf8_corpus_file_does_not_block_initialization(service, corpus_dir):
    (corpus_dir / "latin1.txt").write_bytes("café au lait recipes".encode("latin-1"))

    context = await service.generate_relevant_context("slow breathing exercises calm anxiety")

    assert service.is_initialized
    assert "From breathing.txt" in context
    ids = sorted(d.id for d in service.vector_index.documents())
    assert ids == ["breathing.txt", "latin1.txt", "sleep.txt"]


@pytest.mark.asyncio
async def test_non_utf8_corpus_file_is_not_reloaded(service, make_index, corpus_dir, provider):
    (corpus_dir / "latin1.txt").write_bytes("café au lait recipes".encode("latin-1"))
    await service.initialize()

    restarted = RetrievalService(vector_index=make_index(), corpus_dir=corpus_dir)
    await restarted.initialize()

    assert restarted.vector_index.count == 3
    assert provider.batch_calls == 1
