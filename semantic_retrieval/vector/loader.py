"""
Corpus loading. Every ``.txt`` file in the corpus directory becomes one
Document (id = file name); long files are chunked before indexing.
"""

import hashlib
from pathlib import Path
from typing import Dict, List, Optional, Union

from .chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_documents
from .types import Document
from util.logging import logger

DEFAULT_CHUNK_THRESHOLD = 4000
CORPUS_SUFFIX = ".txt"


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DocumentLoader:
    """Loads plain-text corpus files into Documents."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
    ):
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.chunk_threshold = chunk_threshold

    def list_files(self, dir_path: Union[str, Path]) -> List[Path]:
        directory = Path(dir_path)
        if not directory.is_dir():
            logger.log_operation("loader.list", "failed", {
                "dir_path": str(directory),
                "error": "directory does not exist",
            })
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == CORPUS_SUFFIX)

    def read_file(self, file_path: Union[str, Path]) -> Optional[str]:
        """Read a corpus file as UTF-8, replacing undecodable bytes. None if unreadable."""
        path = Path(file_path)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.log_operation("loader.read", "failed", {"file_path": str(path), "error": str(e)})
            return None

    def fingerprint_directory(self, dir_path: Union[str, Path]) -> Dict[str, str]:
        """Map every readable corpus file name to the sha256 of its content."""
        fingerprints = {}
        for path in self.list_files(dir_path):
            content = self.read_file(path)
            if content is not None:
                fingerprints[path.name] = content_hash(content)
        return fingerprints

    def load_from_file(self, file_path: Union[str, Path]) -> Optional[List[Document]]:
        """
        Load a single text file.

        Returns:
            The file's Document, or its chunks when the text is longer than
            ``chunk_threshold``; None if the file cannot be read.
        """
        path = Path(file_path)
        content = self.read_file(path)
        if content is None:
            return None

        document = Document(
            id=path.name,
            text=content,
            metadata={
                "source": str(path),
                "file_name": path.name,
                "type": "text",
                "content_hash": content_hash(content),
            },
        )

        if len(content) > self.chunk_threshold:
            return chunk_documents([document], self.chunk_size, self.chunk_overlap)
        return [document]

    def load_from_directory(
        self,
        dir_path: Union[str, Path],
        only: Optional[List[str]] = None,
    ) -> List[Document]:
        """
        Load every corpus file from a directory, sorted by file name.

        Args:
            dir_path: Corpus directory
            only: Optional file names to restrict loading to

        Returns:
            Documents (chunked where needed); empty if the directory is missing
        """
        documents = []
        for path in self.list_files(dir_path):
            if only is not None and path.name not in only:
                continue
            loaded = self.load_from_file(path)
            if loaded:
                documents.extend(loaded)

        logger.log_operation("loader.directory", "success", {
            "dir_path": str(dir_path),
            "document_count": len(documents),
        })
        return documents
