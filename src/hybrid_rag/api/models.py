"""Pydantic models for API request/response."""

from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone

from ..models import (
    Chapter,
    Document,
    IndexingResult,
    RetrievalContext,
    SearchFilters,
    TranscriptSentence,
    utcnow,
)


class FiltersModel(BaseModel):
    """Metadata filters, combined with AND."""

    tenant_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    language: Optional[str] = None
    from_date: Optional[datetime] = Field(default=None, description="Earliest updated_at (inclusive)")
    to_date: Optional[datetime] = Field(default=None, description="Latest updated_at (inclusive)")

    def to_filters(self) -> SearchFilters:
        return SearchFilters(**self.model_dump())


class RetrieveRequest(BaseModel):
    """Request model for retrieve endpoint."""

    query: str = Field(..., min_length=1, max_length=4000, description="Natural-language query")
    filters: Optional[FiltersModel] = Field(default=None, description="Optional metadata filters")


class ChunkResult(BaseModel):
    """A chunk in the assembled context with its pipeline scores."""

    id: str
    doc_id: str
    section: str
    order_index: int
    content: str
    title: Optional[str] = None
    dense_score: Optional[float] = None
    sparse_score: Optional[float] = None
    fused_score: Optional[float] = None
    rerank_score: Optional[float] = Field(default=None, description="None for neighbor-only chunks")


class Citation(BaseModel):
    """Citation reference for one chunk."""

    tag: str = Field(..., description="Citation tag, e.g. S1")
    id: str = Field(..., description="Chunk id")
    title: Optional[str] = None
    external_url: Optional[str] = None
    section: Optional[str] = None
    updated_at: Optional[datetime] = None


class RetrieveResponse(BaseModel):
    """Response model for retrieve endpoint."""

    context_text: str = Field(..., description="Rendered context with [#Sx] headers")
    chunks: list[ChunkResult] = Field(default_factory=list)
    sources: list[Citation] = Field(default_factory=list)
    latency_ms: int = Field(..., description="Response time in milliseconds")

    @classmethod
    def from_context(cls, context: RetrievalContext, latency_ms: int) -> "RetrieveResponse":
        return cls(
            context_text=context.context_text,
            chunks=[
                ChunkResult(
                    id=c.chunk.id,
                    doc_id=c.chunk.doc_id,
                    section=c.chunk.section,
                    order_index=c.chunk.order_index,
                    content=c.chunk.content,
                    title=c.chunk.title,
                    dense_score=c.dense_score,
                    sparse_score=c.sparse_score,
                    fused_score=c.fused_score,
                    rerank_score=c.rerank_score,
                )
                for c in context.chunks
            ],
            sources=[
                Citation(
                    tag=s.tag,
                    id=s.id,
                    title=s.title,
                    external_url=s.external_url,
                    section=s.section,
                    updated_at=s.updated_at,
                )
                for s in context.sources
            ],
            latency_ms=latency_ms,
        )


class SentenceModel(BaseModel):
    text: str
    speaker_name: Optional[str] = None
    start_time: float = 0.0
    end_time: float = 0.0


class ChapterModel(BaseModel):
    title: str = ""
    gist: Optional[str] = None
    start_index: Optional[int] = Field(default=None, ge=0)
    end_index: Optional[int] = Field(default=None, ge=0)


class DocumentRequest(BaseModel):
    """Request model for document upsert."""

    id: str = Field(..., min_length=1, description="Stable document id")
    title: str = ""
    source_type: str = Field(default="text", description="transcript or text")
    external_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    tenant_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    language: Optional[str] = None

    content: str = Field(default="", description="Text body, markdown headings allowed")
    sentences: list[SentenceModel] = Field(default_factory=list, description="Transcript sentences")
    chapters: list[ChapterModel] = Field(default_factory=list)
    duration_seconds: Optional[float] = Field(default=None, ge=0)

    overview: Optional[str] = None
    short_summary: Optional[str] = None
    action_items: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)

    def to_document(self) -> Document:
        updated_at = self.updated_at or utcnow()
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return Document(
            id=self.id,
            title=self.title,
            source_type=self.source_type,
            external_url=self.external_url,
            updated_at=updated_at,
            tenant_id=self.tenant_id,
            product=self.product,
            version=self.version,
            language=self.language,
            content=self.content,
            sentences=[TranscriptSentence(**s.model_dump()) for s in self.sentences],
            chapters=[Chapter(**c.model_dump()) for c in self.chapters],
            duration_seconds=self.duration_seconds,
            overview=self.overview,
            short_summary=self.short_summary,
            action_items=self.action_items,
            keywords=list(self.keywords),
            topics=list(self.topics),
            metadata=dict(self.metadata),
        )


class IndexResponse(BaseModel):
    """Response model for document upsert."""

    document_id: str
    strategy: Optional[str] = None
    chunk_count: int = 0
    processing_time_ms: float = 0

    @classmethod
    def from_result(cls, result: IndexingResult) -> "IndexResponse":
        return cls(
            document_id=result.document_id,
            strategy=result.strategy,
            chunk_count=result.chunk_count,
            processing_time_ms=result.processing_time_ms,
        )


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service status: healthy/unhealthy")
    version: str = Field(default="0.1.0", description="API version")
    timestamp: datetime = Field(default_factory=utcnow)
    components: dict = Field(default_factory=dict, description="Component health status")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    document_id: Optional[str] = Field(default=None, description="Document involved, if any")
