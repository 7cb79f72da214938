"""
Data model shared by ingestion and retrieval.

Document and Chunk are the persisted records; ScoredChunk, SourceCitation and
RetrievalContext are built fresh per query. EmbeddingResult and RerankResult
are the validated shapes returned by the external providers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranscriptSentence:
    """One sentence of a transcript."""
    text: str
    speaker_name: Optional[str] = None
    start_time: float = 0.0
    end_time: float = 0.0


@dataclass
class Chapter:
    """
    A chapter/topic boundary supplied with a document.

    start_index/end_index are a half-open range of unit positions. When they
    are missing the chapter is split proportionally.
    """
    title: str = ""
    gist: Optional[str] = None
    start_index: Optional[int] = None
    end_index: Optional[int] = None

    @property
    def has_range(self) -> bool:
        return self.start_index is not None and self.end_index is not None


@dataclass
class Document:
    """A source unit: a meeting transcript or a knowledge-base page."""
    id: str
    title: str = ""
    source_type: str = "text"  # "transcript" or "text"
    external_url: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    # Filter metadata
    tenant_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    language: Optional[str] = None

    # Body
    content: str = ""
    sentences: list[TranscriptSentence] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    duration_seconds: Optional[float] = None

    # Summary fields used for the document-level embedding
    overview: Optional[str] = None
    short_summary: Optional[str] = None
    action_items: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)

    metadata: dict = field(default_factory=dict)
    embedding: Optional[list[float]] = None


@dataclass
class Chunk:
    """A contiguous span of a document, embedded independently."""
    id: str
    doc_id: str
    section: str
    order_index: int
    content: str
    chunk_index: int = 0

    # Denormalized document fields for rendering
    title: Optional[str] = None
    external_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    # Filter fields
    tenant_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    language: Optional[str] = None

    # Build metadata
    topic: Optional[str] = None
    speakers: list[str] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float = 0.0
    unit_start: int = 0
    unit_end: int = 0

    embedding: Optional[list[float]] = None

    @property
    def is_document(self) -> bool:
        """True for a whole-document match of a document stored without chunks."""
        return self.id == self.doc_id

    def to_metadata(self) -> dict:
        """Flatten to a store metadata dict. None values are dropped."""
        meta = {
            "doc_id": self.doc_id,
            "section": self.section,
            "order_index": self.order_index,
            "chunk_index": self.chunk_index,
            "title": self.title,
            "external_url": self.external_url,
            "tenant_id": self.tenant_id,
            "product": self.product,
            "version": self.version,
            "language": self.language,
            "topic": self.topic,
            "speakers": ",".join(self.speakers) if self.speakers else None,
            "start_time": float(self.start_time),
            "end_time": float(self.end_time),
            "unit_start": self.unit_start,
            "unit_end": self.unit_end,
        }
        if self.updated_at is not None:
            meta["updated_at"] = self.updated_at.isoformat()
            meta["updated_ts"] = self.updated_at.timestamp()
        return {k: v for k, v in meta.items() if v is not None}

    @classmethod
    def from_metadata(
        cls,
        chunk_id: str,
        content: str,
        metadata: dict,
        embedding: Optional[list[float]] = None,
    ) -> "Chunk":
        """Rebuild a Chunk from a store row."""
        updated_at = metadata.get("updated_at")
        speakers = metadata.get("speakers") or ""
        return cls(
            id=chunk_id,
            doc_id=metadata.get("doc_id", ""),
            section=metadata.get("section", ""),
            order_index=int(metadata.get("order_index", 0)),
            content=content or "",
            chunk_index=int(metadata.get("chunk_index", 0)),
            title=metadata.get("title"),
            external_url=metadata.get("external_url"),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            tenant_id=metadata.get("tenant_id"),
            product=metadata.get("product"),
            version=metadata.get("version"),
            language=metadata.get("language"),
            topic=metadata.get("topic"),
            speakers=[s for s in speakers.split(",") if s],
            start_time=float(metadata.get("start_time", 0.0)),
            end_time=float(metadata.get("end_time", 0.0)),
            unit_start=int(metadata.get("unit_start", 0)),
            unit_end=int(metadata.get("unit_end", 0)),
            embedding=embedding,
        )


@dataclass
class SearchFilters:
    """Optional predicates applied identically to dense and sparse search (AND)."""
    tenant_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    language: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None

    EQUALITY_FIELDS = ("tenant_id", "product", "version", "language")

    def __post_init__(self):
        # Naive bounds are UTC
        for name in ("from_date", "to_date"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                setattr(self, name, value.replace(tzinfo=timezone.utc))

    @property
    def is_empty(self) -> bool:
        return not any(
            getattr(self, name) is not None
            for name in (*self.EQUALITY_FIELDS, "from_date", "to_date")
        )

    def matches(self, chunk: Chunk) -> bool:
        """Check a chunk against every present predicate."""
        for name in self.EQUALITY_FIELDS:
            wanted = getattr(self, name)
            if wanted is not None and getattr(chunk, name) != wanted:
                return False
        if self.from_date is not None or self.to_date is not None:
            if chunk.updated_at is None:
                return False
            ts = chunk.updated_at.timestamp()
            if self.from_date is not None and ts < self.from_date.timestamp():
                return False
            if self.to_date is not None and ts > self.to_date.timestamp():
                return False
        return True


@dataclass
class ScoredChunk:
    """A chunk plus the scores it picked up along the pipeline."""
    chunk: Chunk
    dense_score: Optional[float] = None
    sparse_score: Optional[float] = None
    fused_score: Optional[float] = None
    rerank_score: Optional[float] = None

    @property
    def id(self) -> str:
        return self.chunk.id


@dataclass
class SourceCitation:
    """Citation metadata for one chunk in the assembled context."""
    id: str
    tag: str
    title: Optional[str] = None
    external_url: Optional[str] = None
    section: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class RetrievalContext:
    """Output of one retrieval call."""
    chunks: list[ScoredChunk] = field(default_factory=list)
    sources: list[SourceCitation] = field(default_factory=list)
    context_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.chunks


@dataclass
class EmbeddingResult:
    """Validated embedding provider output."""
    vector: list[float]
    dimension: int


@dataclass
class RerankResult:
    """Relevance score for one input document, indexable back to the request."""
    index: int
    score: float


@dataclass
class IndexingResult:
    """Result of indexing a document."""
    document_id: str
    success: bool
    strategy: Optional[str] = None
    chunk_count: int = 0
    error: Optional[str] = None
    processing_time_ms: float = 0
