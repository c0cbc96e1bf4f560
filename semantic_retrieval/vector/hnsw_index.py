"""
FAISS HNSW vector index with a parallel handle -> Document store.

The ANN structure and the document store are mutated together and persisted
together as an image: ``vector_index.bin`` (FAISS binary) plus
``doc_store.json`` (versioned document store). HNSW in FAISS has no point
deletion, so deleting a document rebuilds the whole index from the remaining
documents, re-embedding all of them. Reads and inserts are cheap, deletes are
O(n) embedding calls.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import faiss
import numpy as np

from .embeddings import IEmbeddingProvider
from .errors import EmbeddingError, IndexCapacityError, IndexPersistenceError, RetrievalError
from .types import Document, SearchResult
from util.logging import logger

INDEX_SCHEMA_VERSION = 1
DEFAULT_MAX_ELEMENTS = 10000
DEFAULT_HNSW_M = 32
DEFAULT_EF_CONSTRUCTION = 200
DEFAULT_EF_SEARCH = 64


class HNSWVectorIndex:
    """
    Approximate nearest neighbor index over document embeddings.

    Cosine distance is computed as ``1 - inner product`` over L2-normalized
    vectors. Handles are assigned in insertion order starting at the current
    element count. All public operations take an asyncio lock so the handle
    counter, the document map and the files on disk change as one unit.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        index_path: Union[str, Path],
        doc_store_path: Union[str, Path],
        dimension: Optional[int] = None,
        max_elements: int = DEFAULT_MAX_ELEMENTS,
        m: int = DEFAULT_HNSW_M,
        ef_construction: int = DEFAULT_EF_CONSTRUCTION,
        ef_search: int = DEFAULT_EF_SEARCH,
    ):
        if max_elements <= 0:
            raise ValueError("max_elements must be positive")
        self.embedding_provider = embedding_provider
        self.index_path = Path(index_path)
        self.doc_store_path = Path(doc_store_path)
        self.dimension = dimension
        self.max_elements = max_elements
        self.m = m
        self.ef_construction = ef_construction
        self.ef_search = ef_search

        self._index = None
        self._documents: Dict[int, Document] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def count(self) -> int:
        """Number of vectors in the ANN structure (equals the document count)."""
        return int(self._index.ntotal) if self._index is not None else 0

    def get_document(self, handle: int) -> Optional[Document]:
        return self._documents.get(handle)

    def documents(self) -> List[Document]:
        """Stored documents in handle order."""
        return [self._documents[h] for h in sorted(self._documents)]

    def corpus_manifest(self) -> Dict[str, str]:
        """Corpus file name -> content hash for every indexed corpus document."""
        manifest = {}
        for document in self.documents():
            file_name = document.metadata.get("file_name")
            digest = document.metadata.get("content_hash")
            if file_name and digest:
                manifest[file_name] = digest
        return manifest

    def stats(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "count": self.count,
            "max_elements": self.max_elements,
            "dimension": self.dimension,
            "embedding_model": self.embedding_provider.model_name,
            "index_path": str(self.index_path),
            "doc_store_path": str(self.doc_store_path),
        }

    # Lifecycle

    async def initialize(self) -> None:
        """Load the persisted image, or start an empty index. Idempotent."""
        async with self._lock:
            if self._initialized:
                return
            await asyncio.to_thread(self._initialize_sync)

    def _initialize_sync(self) -> None:
        self._resolve_dimension()

        index_exists = self.index_path.exists()
        store_exists = self.doc_store_path.exists()

        if index_exists and store_exists:
            try:
                self._index, self._documents = self._load_image()
                logger.log_persistence_operation("load", str(self.index_path), {
                    "document_count": len(self._documents),
                })
            except Exception as e:
                logger.log_persistence_operation("load", str(self.index_path), {
                    "error": str(e),
                    "action": "starting with an empty index",
                }, status="failed")
                self._reset()
        else:
            if index_exists or store_exists:
                logger.log_persistence_operation("load", str(self.index_path), {
                    "error": "incomplete index image",
                    "index_exists": index_exists,
                    "doc_store_exists": store_exists,
                }, status="failed")
            self._reset()
            logger.log_vector_operation("initialize", {"max_elements": self.max_elements})

        self._initialized = True

    def _resolve_dimension(self) -> None:
        if self.dimension is None:
            self.dimension = int(self.embedding_provider.get_dimension())

    def _new_index(self):
        index = faiss.IndexHNSWFlat(self.dimension, self.m, faiss.METRIC_INNER_PRODUCT)
        index.hnsw.efConstruction = self.ef_construction
        index.hnsw.efSearch = self.ef_search
        return index

    def _reset(self) -> None:
        self._index = self._new_index()
        self._documents = {}

    # Mutations

    async def add_documents(self, documents: Iterable[Document]) -> List[int]:
        """
        Embed and insert documents, then persist the image.

        Args:
            documents: Documents to insert, in handle order

        Returns:
            The handles assigned to the documents

        Raises:
            IndexCapacityError: if the insert would exceed ``max_elements``
            EmbeddingError: if the embedding provider fails
            IndexPersistenceError: if the image cannot be saved
        """
        documents = list(documents)
        await self.initialize()
        async with self._lock:
            return await self._add_unlocked(documents)

    async def _add_unlocked(self, documents: List[Document]) -> List[int]:
        if not documents:
            return []

        current = self.count
        if current + len(documents) > self.max_elements:
            raise IndexCapacityError(len(documents), current, self.max_elements)

        embeddings = await self._embed_batch([d.text for d in documents])
        vectors = self._prepare_vectors(embeddings, expected=len(documents))

        # HNSW has no removal, so a failed save rolls back to a copy
        previous_index = await asyncio.to_thread(faiss.clone_index, self._index)
        previous_documents = dict(self._documents)
        handles = list(range(current, current + len(documents)))
        try:
            await asyncio.to_thread(self._index.add, vectors)
            for handle, document in zip(handles, documents):
                self._documents[handle] = document
            await asyncio.to_thread(self._save_image)
        except Exception:
            self._index, self._documents = previous_index, previous_documents
            logger.log_vector_operation("add", {"count": len(documents), "total": self.count}, status="failed")
            raise
        logger.log_vector_operation("add", {
            "count": len(documents),
            "total": self.count,
        })
        return handles

    async def delete_document(self, document_id: str) -> bool:
        """
        Remove the first document with the given id and rebuild the index.

        Returns:
            True if a document was removed, False if the id is unknown
        """
        await self.initialize()
        async with self._lock:
            handle = next(
                (h for h in sorted(self._documents) if self._documents[h].id == document_id),
                None,
            )
            if handle is None:
                logger.log_vector_operation("delete", {
                    "document_id": document_id,
                    "reason": "not found",
                }, status="skipped")
                return False

            remaining = [self._documents[h] for h in sorted(self._documents) if h != handle]
            await self._rebuild_unlocked(remaining)
            logger.log_vector_operation("delete", {"document_id": document_id, "total": self.count})
            return True

    async def delete_documents(self, document_ids: Iterable[str]) -> int:
        """Remove every document whose id is listed, with a single rebuild."""
        targets = set(document_ids)
        await self.initialize()
        async with self._lock:
            doomed = {h for h, d in self._documents.items() if d.id in targets}
            found = {self._documents[h].id for h in doomed}
            for document_id in sorted(targets - found):
                logger.log_vector_operation("delete", {
                    "document_id": document_id,
                    "reason": "not found",
                }, status="skipped")
            if not doomed:
                return 0

            remaining = [self._documents[h] for h in sorted(self._documents) if h not in doomed]
            await self._rebuild_unlocked(remaining)
            logger.log_vector_operation("delete_batch", {"removed": len(doomed), "total": self.count})
            return len(doomed)

    async def _rebuild_unlocked(self, documents: List[Document]) -> None:
        """Re-embed ``documents`` into a fresh index with handles 0..n-1."""
        previous_index, previous_documents = self._index, self._documents
        self._reset()
        try:
            if documents:
                await self._add_unlocked(documents)
            else:
                await asyncio.to_thread(self._save_image)
        except Exception:
            self._index, self._documents = previous_index, previous_documents
            logger.log_vector_operation("rebuild", {"document_count": len(documents)}, status="failed")
            raise
        logger.log_vector_operation("rebuild", {"document_count": len(documents)})

    async def clear_index(self) -> None:
        """Drop all documents, delete the image files and write an empty image."""
        async with self._lock:
            await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> None:
        self._resolve_dimension()
        self._reset()
        for path in (self.index_path, self.doc_store_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise IndexPersistenceError(f"Failed to delete {path}: {e}") from e
        self._initialized = True
        self._save_image()
        logger.log_vector_operation("clear", {"index_path": str(self.index_path)})

    # Search

    async def similarity_search(self, query_text: str, k: int = 4) -> List[SearchResult]:
        """
        Find the ``k`` documents nearest to ``query_text``.

        Embedding failures propagate. Any other search failure is logged and
        yields an empty result list.
        """
        await self.initialize()
        async with self._lock:
            query_embedding = await self._embed_query(query_text)
            count = self.count
            if count == 0 or k <= 0:
                return []

            limit = min(k, count)
            query_vector = self._prepare_vectors([query_embedding], expected=1)
            try:
                return await asyncio.to_thread(self._search_sync, query_vector, limit)
            except Exception as e:
                logger.log_vector_operation("search", {"k": limit, "error": str(e)}, status="failed")
                return []

    def _search_sync(self, query_vector: np.ndarray, limit: int) -> List[SearchResult]:
        self._index.hnsw.efSearch = max(self.ef_search, limit)
        similarities, labels = self._index.search(query_vector, limit)

        results = []
        for similarity, handle in zip(similarities[0].tolist(), labels[0].tolist()):
            if handle < 0:
                continue
            document = self._documents.get(handle)
            if document is None:
                raise LookupError(f"Document with handle {handle} not found")
            distance = min(max(1.0 - float(similarity), 0.0), 2.0)
            results.append(SearchResult(document=document, score=distance))

        results.sort(key=lambda r: r.score)
        return results

    # Embedding helpers

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        try:
            return await asyncio.to_thread(self.embedding_provider.embed_documents, texts)
        except RetrievalError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to generate document embeddings: {e}") from e

    async def _embed_query(self, text: str) -> List[float]:
        try:
            return await asyncio.to_thread(self.embedding_provider.embed_text, text)
        except RetrievalError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

    def _prepare_vectors(self, embeddings, expected: int) -> np.ndarray:
        """Validate shape and L2-normalize embeddings into a float32 matrix."""
        if len(embeddings) != expected:
            raise EmbeddingError(f"Expected {expected} embeddings, got {len(embeddings)}")
        vectors = np.asarray(embeddings, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension {vectors.shape[-1] if vectors.ndim else 0} "
                f"does not match index dimension {self.dimension}"
            )
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return np.ascontiguousarray(vectors / norms, dtype=np.float32)

    # Persistence

    def _save_image(self) -> None:
        """Write both files of the image, each through a temp file and rename."""
        payload = {
            "schema_version": INDEX_SCHEMA_VERSION,
            "dimension": self.dimension,
            "count": self.count,
            "embedding_model": self.embedding_provider.model_name,
            "documents": {str(h): self._documents[h].to_dict() for h in sorted(self._documents)},
            "corpus_manifest": self.corpus_manifest(),
        }
        index_tmp = self.index_path.with_name(self.index_path.name + ".tmp")
        store_tmp = self.doc_store_path.with_name(self.doc_store_path.name + ".tmp")
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            self.doc_store_path.parent.mkdir(parents=True, exist_ok=True)

            faiss.write_index(self._index, str(index_tmp))
            os.replace(index_tmp, self.index_path)

            with store_tmp.open("w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(store_tmp, self.doc_store_path)
        except Exception as e:
            logger.log_persistence_operation("save", str(self.index_path), {"error": str(e)}, status="failed")
            raise IndexPersistenceError(f"Failed to save vector index: {e}") from e

        logger.log_persistence_operation("save", str(self.index_path), {"document_count": self.count})

    def _load_image(self):
        """Read and cross-check both files of the image."""
        with self.doc_store_path.open("r", encoding="utf-8") as f:
            payload = json.load(f)

        if not isinstance(payload, dict):
            raise IndexPersistenceError("Document store is not a JSON object")
        version = payload.get("schema_version")
        if version != INDEX_SCHEMA_VERSION:
            raise IndexPersistenceError(
                f"Unsupported document store schema version {version!r}, expected {INDEX_SCHEMA_VERSION}"
            )
        if payload.get("dimension") != self.dimension:
            raise IndexPersistenceError(
                f"Persisted dimension {payload.get('dimension')!r} does not match {self.dimension}"
            )

        documents = {int(h): Document.from_dict(d) for h, d in payload.get("documents", {}).items()}

        index = faiss.read_index(str(self.index_path))
        if not hasattr(index, "hnsw"):
            raise IndexPersistenceError(f"{self.index_path} does not hold an HNSW index")
        if index.d != self.dimension:
            raise IndexPersistenceError(f"Index dimension {index.d} does not match {self.dimension}")

        ntotal = int(index.ntotal)
        if payload.get("count") != ntotal or len(documents) != ntotal:
            raise IndexPersistenceError(
                f"Index holds {ntotal} vectors but document store records "
                f"{payload.get('count')!r} with {len(documents)} documents"
            )
        if set(documents) != set(range(ntotal)):
            raise IndexPersistenceError("Document store handles do not match index handles")
        if ntotal > self.max_elements:
            raise IndexPersistenceError(f"Index holds {ntotal} vectors, capacity is {self.max_elements}")

        index.hnsw.efSearch = self.ef_search
        return index, documents
