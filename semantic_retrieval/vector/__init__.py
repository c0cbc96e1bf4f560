"""
Vector layer: embedding providers, chunking, corpus loading and the
persisted FAISS HNSW index.
"""

from .types import Document, SearchResult
from .errors import (
    RetrievalError,
    EmbeddingError,
    IndexPersistenceError,
    IndexCapacityError,
    ChunkingError,
)
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    SentenceTransformerEmbedding,
    OllamaEmbedding,
    OpenAIEmbedding,
)
from .chunker import chunk_document, chunk_documents
from .loader import DocumentLoader
from .hnsw_index import HNSWVectorIndex, INDEX_SCHEMA_VERSION

__all__ = [
    'Document',
    'SearchResult',
    'RetrievalError',
    'EmbeddingError',
    'IndexPersistenceError',
    'IndexCapacityError',
    'ChunkingError',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OllamaEmbedding',
    'OpenAIEmbedding',
    'chunk_document',
    'chunk_documents',
    'DocumentLoader',
    'HNSWVectorIndex',
    'INDEX_SCHEMA_VERSION',
]
