"""
Data model for the retrieval engine: documents, search results and the
serialized form of the document store.
"""

from typing import Any, Dict
from dataclasses import dataclass, field


@dataclass
class Document:
    """A unit of text stored in the vector index."""

    id: str
    """Identifier, unique within a load batch (not enforced globally)"""

    text: str
    """Raw text that gets embedded"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Ordered scalar/string metadata (source, file_name, parent_id, ...)"""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        if not isinstance(data, dict) or "id" not in data or "text" not in data:
            raise ValueError(f"Malformed document record: {data!r}")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError(f"Malformed metadata for document {data['id']!r}")
        return cls(id=str(data["id"]), text=str(data["text"]), metadata=dict(metadata))


@dataclass
class SearchResult:
    """A search hit: the stored document and its cosine distance to the query."""

    document: Document
    """Document mapped back from the index handle"""

    score: float
    """Cosine distance (0.0 = same direction, lower is more similar)"""
