"""
Document ingestion module.

Components:
- DocumentIndexer: Chunk, embed and store a document idempotently
- load_documents: Parse transcript and text-page JSON exports
"""

from .document_indexer import DocumentIndexer, build_embedding_text, document_body
from .document_loader import load_documents, parse_document, parse_timestamp

__all__ = [
    "DocumentIndexer",
    "build_embedding_text",
    "document_body",
    "load_documents",
    "parse_document",
    "parse_timestamp",
]
