"""
Document Indexer - Orchestrates the ingestion pipeline for one document.

Combines:
- Strategy selection: single / speaker_turns / chapters by document size
- ChunkBuilder: Ordered chunks per (document, section)
- EmbeddingService: Document and chunk embeddings (document mode)
- VectorStore: Document row upsert and per-document chunk replacement
- BM25Index: Per-document replacement in the sparse index

Every embedding is computed before the first write, so a provider failure
leaves the store untouched. Re-indexing the same document is idempotent.
"""

import logging
import threading
import time
from typing import Iterable, Optional

from ..errors import RagError
from ..models import Document, IndexingResult
from ..processing.chunker import (
    ChunkBuilder,
    ChunkingConfig,
    clean_transcript_text,
    strategy_for_document,
    units_for_document,
)
from ..retrieval.bm25_index import BM25Index
from ..retrieval.embedding_service import EmbeddingMode, EmbeddingService
from ..retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


def document_body(doc: Document) -> str:
    """Readable full text of a document (speaker-grouped for transcripts)."""
    if doc.sentences:
        units, _ = units_for_document(doc)
        return clean_transcript_text(units)
    return (doc.content or "").strip()


def build_embedding_text(doc: Document) -> str:
    """
    Input text for the whole-document embedding.

    Title and summary fields, blank-line separated; absent fields are
    skipped. Documents without any of them fall back to their body.
    """
    summary = [
        doc.overview,
        doc.short_summary,
        doc.action_items,
        ", ".join(doc.keywords) if doc.keywords else None,
        ", ".join(doc.topics) if doc.topics else None,
    ]
    summary = [p.strip() for p in summary if p and p.strip()]
    if not summary:
        summary = [document_body(doc)]

    parts = [doc.title] + summary
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


class DocumentIndexer:
    """
    Index documents into the chunk store.

    Pipeline:
    1. Embedding text → document embedding
    2. Strategy selection → chunk building → chunk embeddings
    3. Document row upsert
    4. Chunk replacement (delete by doc_id, insert, restore on failure)
    5. Sparse index replacement

    Usage:
        indexer = DocumentIndexer(embedding_service, vector_store, bm25_index)
        result = indexer.upsert(document)
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        bm25_index: BM25Index,
        chunking_config: Optional[ChunkingConfig] = None,
        save_sparse: bool = True,
    ):
        """
        Args:
            embedding_service: Provider for document-mode embeddings
            vector_store: Opened VectorStore
            bm25_index: Sparse index updated after each document
            chunking_config: Strategy thresholds and batch size
            save_sparse: Persist the BM25 corpus after every change
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.bm25_index = bm25_index
        self.chunking_config = chunking_config or ChunkingConfig()
        self.chunk_builder = ChunkBuilder(self.chunking_config)
        self.save_sparse = save_sparse

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, document_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(document_id, threading.Lock())

    def upsert(self, doc: Document) -> IndexingResult:
        """
        Index (or re-index) a single document.

        Args:
            doc: Document to index

        Returns:
            IndexingResult with strategy, chunk count and timing

        Raises:
            EmbeddingError, StoreError: with document_id set to doc.id
        """
        start_time = time.time()

        with self._lock_for(doc.id):
            try:
                strategy = strategy_for_document(doc, self.chunking_config)
                chunks = self.chunk_builder.build(doc, strategy)

                embedding_text = build_embedding_text(doc)
                texts = [embedding_text] + [c.content for c in chunks]
                embeddings = self.embedding_service.embed_batch(texts, EmbeddingMode.DOCUMENT)

                doc.embedding = embeddings[0].vector
                for chunk, result in zip(chunks, embeddings[1:]):
                    chunk.embedding = result.vector

                self.vector_store.upsert_document(
                    doc, doc.embedding, text=document_body(doc), chunk_count=len(chunks)
                )
                self.vector_store.replace_chunks(doc.id, chunks)
                self.bm25_index.replace_document(doc.id, chunks, save=self.save_sparse)
            except RagError as e:
                if e.document_id is None:
                    e.document_id = doc.id
                logger.error(f"Indexing failed for {doc.id}: {e}")
                raise

        elapsed = (time.time() - start_time) * 1000
        logger.info(
            f"Indexed {doc.id}: strategy={strategy.value}, chunks={len(chunks)}, "
            f"time={elapsed:.0f}ms"
        )
        return IndexingResult(
            document_id=doc.id,
            success=True,
            strategy=strategy.value,
            chunk_count=len(chunks),
            processing_time_ms=elapsed,
        )

    def delete(self, document_id: str):
        """Remove a document, its chunks and its sparse-index entries."""
        with self._lock_for(document_id):
            self.vector_store.delete_document(document_id)
            self.bm25_index.remove_document(document_id, save=self.save_sparse)

    def index_documents(self, documents: Iterable[Document]) -> list[IndexingResult]:
        """
        Upsert a batch of documents.

        Failures are logged and reported as unsuccessful results; the
        remaining documents are still indexed.
        """
        results = []
        for doc in documents:
            try:
                results.append(self.upsert(doc))
            except RagError as e:
                results.append(IndexingResult(
                    document_id=doc.id,
                    success=False,
                    error=str(e),
                ))

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Indexed {len(results) - failed}/{len(results)} documents")
        return results
