"""
Request/response models for the retrieval admin API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any


class HealthResponse(BaseModel):
    status: str
    version: str
    document_count: int
    max_elements: int
    dimension: Optional[int] = None
    embedding_model: str
    corpus_dir: Optional[str] = None
    last_checked: str
    config_issues: List[str] = []


class ContextRequest(BaseModel):
    """Request to assemble a context string for a query."""
    query: str
    k: Optional[int] = None

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('k')
    @classmethod
    def k_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError('k must be >= 1')
        return v


class ContextResponse(BaseModel):
    context: str


class SearchRequest(BaseModel):
    """Request for raw similarity search results."""
    query: str
    k: int = 4

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('k')
    @classmethod
    def k_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('k must be >= 1')
        return v


class DocumentModel(BaseModel):
    id: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('id')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('id cannot be empty')
        return v


class SearchHit(BaseModel):
    document: DocumentModel
    score: float                      # cosine distance, lower is closer


class SearchResponse(BaseModel):
    hits: List[SearchHit]


class AddDocumentsRequest(BaseModel):
    """Request to index documents."""
    documents: List[DocumentModel]
    chunk: bool = True

    @field_validator('documents')
    @classmethod
    def documents_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('documents cannot be empty')
        return v


class AddDocumentsResponse(BaseModel):
    handles: List[int]
    total: int


class DeleteDocumentResponse(BaseModel):
    document_id: str
    deleted: bool
    total: int


class ClearResponse(BaseModel):
    success: bool
