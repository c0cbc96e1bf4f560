"""
Retrieval service: corpus loading, similarity search and context assembly
on top of the HNSW vector index.

Consumers (chat, calls, stories) only call ``initialize``,
``generate_relevant_context`` and ``clear_vector_store``. Context assembly
never raises: retrieval failures degrade to an empty context.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..vector.chunker import chunk_documents
from ..vector.errors import RetrievalError
from ..vector.hnsw_index import HNSWVectorIndex
from ..vector.loader import DocumentLoader
from ..vector.types import Document, SearchResult
from util.logging import logger

CONTEXT_HEADER = "RELEVANT CONTEXT:\n"
CONTEXT_FOOTER = (
    "Use the above information to provide more informed and contextually relevant responses. "
    "However, do not explicitly mention that you are using this information or cite these sources "
    "unless directly asked about reference materials."
)


class RetrievalService:
    """
    Orchestrates chunking, embedding and the vector index.

    One instance owns one index; build it with ``create_retrieval_service``
    or pass a prepared index directly.
    """

    def __init__(
        self,
        vector_index: HNSWVectorIndex,
        corpus_dir: Optional[Union[str, Path]] = None,
        loader: Optional[DocumentLoader] = None,
        relevance_threshold: float = 0.5,
        snippet_chars: int = 500,
        default_k: int = 3,
    ):
        self.vector_index = vector_index
        self.corpus_dir = Path(corpus_dir) if corpus_dir is not None else None
        self.loader = loader or DocumentLoader()
        self.relevance_threshold = relevance_threshold
        self.snippet_chars = snippet_chars
        self.default_k = default_k
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize the index and bring the corpus up to date. Idempotent."""
        async with self._init_lock:
            if self._initialized:
                return
            try:
                await self.vector_index.initialize()
                await self._sync_corpus()
            except Exception as e:
                logger.log_retrieval_operation("initialize", details={"error": str(e)}, status="failed")
                raise RetrievalError(f"Failed to initialize retrieval service: {e}") from e

            self._initialized = True
            logger.log_retrieval_operation("initialize", details={"document_count": self.vector_index.count})

    async def _sync_corpus(self) -> None:
        """
        Compare the corpus directory with the manifest stored in the index.

        Unchanged files are skipped. Documents of changed or removed files are
        deleted with one rebuild; new and changed files are loaded, chunked and
        added in one batch.
        """
        if self.corpus_dir is None:
            return
        if not self.corpus_dir.is_dir():
            logger.log_retrieval_operation("corpus_sync", details={
                "corpus_dir": str(self.corpus_dir),
                "reason": "corpus directory missing",
            }, status="skipped")
            return

        current = await asyncio.to_thread(self.loader.fingerprint_directory, self.corpus_dir)
        indexed = self.vector_index.corpus_manifest()

        stale = {name for name, digest in indexed.items() if current.get(name) != digest}
        pending = sorted(name for name, digest in current.items() if indexed.get(name) != digest)

        if not stale and not pending:
            logger.log_retrieval_operation("corpus_sync", details={
                "files": len(current),
                "reason": "corpus already loaded",
            }, status="skipped")
            return

        if stale:
            stale_ids = [
                d.id for d in self.vector_index.documents()
                if d.metadata.get("file_name") in stale
            ]
            await self.vector_index.delete_documents(stale_ids)

        added = 0
        if pending:
            documents = await asyncio.to_thread(self.loader.load_from_directory, self.corpus_dir, pending)
            if documents:
                await self.vector_index.add_documents(documents)
                added = len(documents)
            else:
                logger.warning(f"No corpus documents could be loaded from {self.corpus_dir}")

        logger.log_retrieval_operation("corpus_sync", details={
            "stale_files": len(stale),
            "loaded_files": len(pending),
            "documents_added": added,
        })

    async def generate_relevant_context(self, query: str, k: Optional[int] = None) -> str:
        """
        Build a context string from the passages most relevant to ``query``.

        Only results with a cosine distance below the relevance threshold are
        included. Returns "" when nothing qualifies or anything fails.
        """
        k = self.default_k if k is None else k
        try:
            if not self._initialized:
                await self.initialize()

            results = await self.vector_index.similarity_search(query, k)

            blocks = []
            for i, result in enumerate(results, start=1):
                if result.score < self.relevance_threshold:
                    source = result.document.metadata.get("file_name") or "unknown source"
                    snippet = result.document.text[:self.snippet_chars]
                    blocks.append(f"[{i}] From {source}: {snippet}...\n\n")

            logger.log_retrieval_operation("context", query=query, details={
                "results": len(results),
                "relevant": len(blocks),
            })
            if not blocks:
                return ""
            return CONTEXT_HEADER + "".join(blocks) + CONTEXT_FOOTER

        except Exception as e:
            logger.log_retrieval_operation("context", query=query, details={"error": str(e)}, status="failed")
            return ""

    async def query(self, query: str, k: int = 4) -> List[SearchResult]:
        """Raw similarity search. Embedding failures propagate."""
        if not self._initialized:
            await self.initialize()
        return await self.vector_index.similarity_search(query, k)

    async def add_documents(self, documents: Iterable[Document], chunk: bool = True) -> List[int]:
        """Chunk (optionally) and index documents. Returns the assigned handles."""
        if not self._initialized:
            await self.initialize()
        documents = list(documents)
        if chunk:
            documents = chunk_documents(documents, self.loader.chunk_size, self.loader.chunk_overlap)
        return await self.vector_index.add_documents(documents)

    async def delete_document(self, document_id: str) -> bool:
        if not self._initialized:
            await self.initialize()
        return await self.vector_index.delete_document(document_id)

    async def clear_vector_store(self) -> None:
        """Clear all documents from the vector store."""
        if not self._initialized:
            await self.initialize()

        try:
            await self.vector_index.clear_index()
        except Exception as e:
            logger.log_retrieval_operation("clear", details={"error": str(e)}, status="failed")
            raise RetrievalError(f"Failed to clear vector store: {e}") from e
        logger.log_retrieval_operation("clear")

    def health(self) -> Dict[str, Any]:
        """Return retrieval engine health information."""
        stats = self.vector_index.stats()
        return {
            "status": "healthy" if self._initialized else "uninitialized",
            "document_count": stats["count"],
            "max_elements": stats["max_elements"],
            "dimension": stats["dimension"],
            "embedding_model": stats["embedding_model"],
            "index_path": stats["index_path"],
            "doc_store_path": stats["doc_store_path"],
            "corpus_dir": str(self.corpus_dir) if self.corpus_dir is not None else None,
            "last_checked": datetime.now().isoformat(),
        }


def create_retrieval_service(
    embedding_provider=None,
    corpus_dir: Optional[Union[str, Path]] = None,
    index_dir: Optional[Union[str, Path]] = None,
) -> RetrievalService:
    """Build a retrieval service from configuration, with optional overrides."""
    from . import config

    provider = embedding_provider or config.get_embedding_provider()
    if index_dir is not None:
        index_path = Path(index_dir) / config.INDEX_FILE_NAME
        doc_store_path = Path(index_dir) / config.DOC_STORE_FILE_NAME
    else:
        index_path, doc_store_path = config.get_index_paths()

    vector_index = HNSWVectorIndex(
        embedding_provider=provider,
        index_path=index_path,
        doc_store_path=doc_store_path,
        max_elements=config.INDEX_MAX_ELEMENTS,
        m=config.HNSW_M,
        ef_construction=config.HNSW_EF_CONSTRUCTION,
        ef_search=config.HNSW_EF_SEARCH,
    )
    loader = DocumentLoader(
        chunk_size=config.CHUNK_SIZE,
        chunk_overlap=config.CHUNK_OVERLAP,
        chunk_threshold=config.CHUNK_THRESHOLD,
    )
    return RetrievalService(
        vector_index=vector_index,
        corpus_dir=corpus_dir if corpus_dir is not None else config.CORPUS_DIR,
        loader=loader,
        relevance_threshold=config.RELEVANCE_THRESHOLD,
        snippet_chars=config.CONTEXT_SNIPPET_CHARS,
        default_k=config.DEFAULT_CONTEXT_K,
    )
