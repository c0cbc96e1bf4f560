"""
Character-window chunking. Long texts are split into overlapping windows so
each unit fits embedding and context-length limits.
"""

from typing import Iterable, List

from .errors import ChunkingError
from .types import Document
from util.logging import logger

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200


def chunk_document(
    document: Document,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[Document]:
    """
    Split a document into overlapping windows.

    Args:
        document: Document to split
        chunk_size: Width of each window in characters
        overlap: Characters shared by consecutive windows

    Returns:
        ``[document]`` when the text fits in one window, otherwise one Document
        per window with ids ``{parent_id}_chunk_{n}`` (1-based).

    Raises:
        ChunkingError: if the window parameters cannot make progress
    """
    if chunk_size <= 0:
        raise ChunkingError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ChunkingError(f"overlap must be in [0, {chunk_size}), got {overlap}")

    text = document.text
    if len(text) <= chunk_size:
        return [document]

    step = chunk_size - overlap
    chunks = []
    start = 0
    while True:
        end = min(start + chunk_size, len(text))
        index = len(chunks) + 1
        metadata = dict(document.metadata)
        metadata["parent_id"] = document.id
        metadata["chunk_index"] = index
        chunks.append(Document(
            id=f"{document.id}_chunk_{index}",
            text=text[start:end],
            metadata=metadata,
        ))
        if end >= len(text):
            break
        start += step

    logger.log_operation("chunker.split", "success", {
        "document_id": document.id,
        "chunk_count": len(chunks),
    })
    return chunks


def chunk_documents(
    documents: Iterable[Document],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[Document]:
    """Chunk every document, keeping the unchunked original if chunking fails."""
    result = []
    for document in documents:
        try:
            result.extend(chunk_document(document, chunk_size, overlap))
        except Exception as e:
            logger.log_operation("chunker.split", "failed", {
                "document_id": document.id,
                "error": str(e),
            })
            result.append(document)
    return result
