"""HTTP API for the retrieval engine."""

from .models import DocumentRequest, IndexResponse, RetrieveRequest, RetrieveResponse, HealthResponse
from .app import create_app

__all__ = [
    "DocumentRequest",
    "IndexResponse",
    "RetrieveRequest",
    "RetrieveResponse",
    "HealthResponse",
    "create_app",
]
