"""FastAPI application exposing retrieval and document ingestion."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .models import (
    DocumentRequest,
    ErrorResponse,
    HealthResponse,
    IndexResponse,
    RetrieveRequest,
    RetrieveResponse,
)
from ..errors import EmbeddingError, RagError, RerankError, StoreError
from ..rag import RagEngine

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def status_for(error: RagError) -> int:
    """HTTP status for an engine error."""
    if isinstance(error, (EmbeddingError, RerankError)):
        return 502
    if isinstance(error, StoreError):
        return 503
    # ConfigError and anything unexpected
    return 500


def create_app(engine: Optional[RagEngine] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        engine: Engine to serve. When None, one is built from config.yaml and
            the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            app.state.engine = RagEngine.from_env()
        app.state.engine.open()
        yield
        app.state.engine.close()

    app = FastAPI(
        title="Hybrid RAG Retrieval API",
        description="Hybrid dense + sparse retrieval with reranking and citable context",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_engine() -> RagEngine:
        if app.state.engine is None:
            raise HTTPException(status_code=503, detail="Engine not initialized")
        return app.state.engine

    @app.exception_handler(RagError)
    async def rag_error_handler(request: Request, exc: RagError):
        status_code = status_for(exc)
        logger.error(f"{request.method} {request.url.path} failed ({status_code}): {exc}")
        body = ErrorResponse(
            error=type(exc).__name__,
            message=str(exc),
            document_id=exc.document_id,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    def health_check():
        """Check API and component health."""
        components = {"api": "healthy"}
        engine = app.state.engine

        if engine is not None and engine.is_open:
            stats = engine.get_stats()
            components["vector_store"] = stats["vector_store"]
            components["bm25"] = stats["bm25"]
            status = "healthy"
        else:
            components["engine"] = "not initialized"
            status = "degraded"

        return HealthResponse(status=status, version=API_VERSION, components=components)

    @app.post("/retrieve", response_model=RetrieveResponse, tags=["Retrieval"])
    def retrieve(request: RetrieveRequest):
        """
        Retrieve citable context for a query.

        - Dense and sparse search with weighted fusion
        - Cross-encoder reranking with a relevance floor
        - Neighbor chunks from the same section
        """
        start_time = time.time()
        filters = request.filters.to_filters() if request.filters else None

        context = get_engine().retrieve(request.query, filters)

        latency_ms = int((time.time() - start_time) * 1000)
        return RetrieveResponse.from_context(context, latency_ms)

    @app.post("/documents", response_model=IndexResponse, tags=["Documents"])
    def upsert_document(request: DocumentRequest):
        """Index or re-index a document."""
        result = get_engine().upsert(request.to_document())
        return IndexResponse.from_result(result)

    @app.delete("/documents/{document_id}", status_code=204, tags=["Documents"])
    def delete_document(document_id: str):
        """Delete a document and its chunks."""
        get_engine().delete(document_id)

    return app


# Create app instance
app = create_app()
