"""
HTTP admin surface for the retrieval engine.
Exposes health, context assembly, raw search and index maintenance.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .schemas import (
    HealthResponse,
    ContextRequest,
    ContextResponse,
    SearchRequest,
    SearchHit,
    SearchResponse,
    DocumentModel,
    AddDocumentsRequest,
    AddDocumentsResponse,
    DeleteDocumentResponse,
    ClearResponse,
)
from ..core.config import VERSION, debug_enabled, validate_retrieval_config
from ..core.retrieval_service import RetrievalService, create_retrieval_service
from ..vector.errors import EmbeddingError, IndexCapacityError, RetrievalError
from ..vector.types import Document
from util.logging import logger


def create_app(service: Optional[RetrievalService] = None) -> FastAPI:
    """Build the API around one retrieval service (created from config if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await app.state.retrieval_service.initialize()
        except RetrievalError as e:
            # Context requests still degrade to "" until initialization succeeds
            logger.error(f"Retrieval service failed to initialize at startup: {e}")
        yield

    app = FastAPI(
        title="Semantic Retrieval API",
        version=VERSION,
        description="Chunking, HNSW vector index and context assembly",
        docs_url="/docs" if debug_enabled() else None,
        redoc_url="/redoc" if debug_enabled() else None,
        lifespan=lifespan,
    )
    app.state.retrieval_service = service or create_retrieval_service()

    def get_service(request: Request) -> RetrievalService:
        return request.app.state.retrieval_service

    @app.get("/health", response_model=HealthResponse)
    def health_endpoint(request: Request):
        """Report index size, capacity and configuration issues."""
        health = get_service(request).health()
        issues = validate_retrieval_config()
        return HealthResponse(
            status=health["status"] if not issues else "degraded",
            version=VERSION,
            document_count=health["document_count"],
            max_elements=health["max_elements"],
            dimension=health["dimension"],
            embedding_model=health["embedding_model"],
            corpus_dir=health["corpus_dir"],
            last_checked=health["last_checked"],
            config_issues=issues,
        )

    @app.post("/context", response_model=ContextResponse)
    async def context_endpoint(body: ContextRequest, request: Request):
        """Assemble relevant context for a query; empty string when nothing matches."""
        context = await get_service(request).generate_relevant_context(body.query, body.k)
        return ContextResponse(context=context)

    @app.post("/search", response_model=SearchResponse)
    async def search_endpoint(body: SearchRequest, request: Request):
        """Return raw nearest-neighbor hits with cosine distances."""
        try:
            results = await get_service(request).query(body.query, body.k)
        except EmbeddingError as e:
            raise HTTPException(status_code=502, detail=f"Embedding failed: {e}")

        return SearchResponse(hits=[
            SearchHit(document=DocumentModel(**r.document.to_dict()), score=r.score)
            for r in results
        ])

    @app.post("/documents", response_model=AddDocumentsResponse)
    async def add_documents_endpoint(body: AddDocumentsRequest, request: Request):
        """Chunk, embed and index documents."""
        service = get_service(request)
        documents = [Document(id=d.id, text=d.text, metadata=d.metadata) for d in body.documents]
        try:
            handles = await service.add_documents(documents, chunk=body.chunk)
        except IndexCapacityError as e:
            raise HTTPException(status_code=507, detail=str(e))
        except EmbeddingError as e:
            raise HTTPException(status_code=502, detail=f"Embedding failed: {e}")

        return AddDocumentsResponse(handles=handles, total=service.vector_index.count)

    @app.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
    async def delete_document_endpoint(document_id: str, request: Request):
        """Delete a document by id (rebuilds the index). Unknown ids are a no-op."""
        service = get_service(request)
        try:
            deleted = await service.delete_document(document_id)
        except EmbeddingError as e:
            raise HTTPException(status_code=502, detail=f"Embedding failed during rebuild: {e}")

        return DeleteDocumentResponse(
            document_id=document_id,
            deleted=deleted,
            total=service.vector_index.count,
        )

    @app.post("/admin/clear", response_model=ClearResponse)
    async def clear_endpoint(request: Request):
        """Destroy the index and its persisted image."""
        await get_service(request).clear_vector_store()
        return ClearResponse(success=True)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Handle all unhandled exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        content = {"detail": "Internal server error"}
        if debug_enabled():
            content["debug"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()
