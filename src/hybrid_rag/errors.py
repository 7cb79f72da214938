"""Exception hierarchy for the retrieval engine."""

from typing import Optional


class RagError(Exception):
    """Base class for engine errors. Carries the document id when one is involved."""

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.document_id = document_id

    def __str__(self) -> str:
        message = super().__str__()
        if self.document_id:
            return f"{message} (document_id={self.document_id})"
        return message


class EmbeddingError(RagError):
    """Embedding provider or network failure."""


class RerankError(RagError):
    """Reranking provider failure."""


class StoreError(RagError):
    """Query or connection failure against the chunk store."""


class ConfigError(RagError):
    """Unusable configuration, e.g. missing connection info at startup."""
