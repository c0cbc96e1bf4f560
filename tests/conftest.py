"""
Shared fixtures: a hash embedding provider that counts calls, index paths
under tmp_path and a small on-disk corpus.
"""

import pytest

from semantic_retrieval.vector import DeterministicHashEmbedding, HNSWVectorIndex


class CountingEmbedding(DeterministicHashEmbedding):
    """Hash embedding that records calls and can be told to fail."""

    def __init__(self, dimension: int = 384):
        super().__init__(dimension)
        self.text_calls = 0
        self.batch_calls = 0
        self.batch_sizes = []
        self.fail_batch = False
        self.fail_text = False

    def embed_text(self, text):
        if self.fail_text:
            raise RuntimeError("embedding service unavailable")
        self.text_calls += 1
        return super().embed_text(text)

    def embed_documents(self, texts):
        if self.fail_batch:
            raise RuntimeError("embedding service unavailable")
        self.batch_calls += 1
        self.batch_sizes.append(len(texts))
        return [DeterministicHashEmbedding.embed_text(self, t) for t in texts]


@pytest.fixture
def provider():
    return CountingEmbedding()


@pytest.fixture
def index_paths(tmp_path):
    index_dir = tmp_path / "index"
    return index_dir / "vector_index.bin", index_dir / "doc_store.json"


@pytest.fixture
def make_index(provider, index_paths):
    """Build an index over the shared paths, simulating a process restart per call."""
    def _make(embedding_provider=None, **kwargs):
        index_path, doc_store_path = index_paths
        return HNSWVectorIndex(
            embedding_provider=embedding_provider or provider,
            index_path=index_path,
            doc_store_path=doc_store_path,
            **kwargs,
        )
    return _make


@pytest.fixture
def corpus_dir(tmp_path):
    corpus = tmp_path / "brain"
    corpus.mkdir()
    (corpus / "breathing.txt").write_text(
        "Slow breathing exercises calm the nervous system during anxiety", encoding="utf-8"
    )
    (corpus / "sleep.txt").write_text(
        "Regular sleep schedules improve mood and concentration", encoding="utf-8"
    )
    (corpus / "notes.md").write_text("markdown files are not part of the corpus", encoding="utf-8")
    return corpus
