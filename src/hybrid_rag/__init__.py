"""Hybrid semantic retrieval engine: ingestion, dense + sparse search, reranking, citable context."""

from .config import RagConfig, get_rag_config
from .errors import ConfigError, EmbeddingError, RagError, RerankError, StoreError
from .models import (
    Chapter,
    Chunk,
    Document,
    RetrievalContext,
    ScoredChunk,
    SearchFilters,
    SourceCitation,
    TranscriptSentence,
)
from .rag import EngineConfig, RagEngine

__version__ = "0.1.0"

__all__ = [
    "RagConfig",
    "get_rag_config",
    "RagError",
    "EmbeddingError",
    "RerankError",
    "StoreError",
    "ConfigError",
    "Chapter",
    "Chunk",
    "Document",
    "RetrievalContext",
    "ScoredChunk",
    "SearchFilters",
    "SourceCitation",
    "TranscriptSentence",
    "EngineConfig",
    "RagEngine",
]
