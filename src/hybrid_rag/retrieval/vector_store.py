"""
Vector Store - Persisted documents and chunks with cosine similarity search.

Uses ChromaDB with two collections: one row per document (whole-document
embedding) and one row per chunk. Chunk metadata carries the filter fields
(tenant_id, product, version, language, updated_ts) so dense search and
sibling lookups can be restricted without a second round-trip.

Features:
- Semantic search with cosine similarity and SearchFilters
- Whole-document search for documents stored without chunks
- Sibling lookup by (doc_id, section, order_index)
- Per-document chunk replacement with rollback on failed insert
- Schema capability check once at open()
"""

import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

import chromadb
from chromadb.config import Settings

from ..errors import ConfigError, StoreError
from ..models import Chunk, Document, ScoredChunk, SearchFilters

logger = logging.getLogger(__name__)

DOCUMENT_SECTION = "General"


@dataclass
class VectorStoreConfig:
    """Configuration for vector store."""
    chunk_collection: str = "rag_chunks"
    document_collection: str = "rag_documents"
    persist_directory: str = "data/vectordb"
    embedding_dimension: int = 1024


def build_where_clause(filters: Optional[SearchFilters], extra: Optional[list[dict]] = None) -> Optional[dict]:
    """Build a ChromaDB where clause from SearchFilters plus extra conditions."""
    conditions = list(extra or [])

    if filters is not None:
        for name in SearchFilters.EQUALITY_FIELDS:
            value = getattr(filters, name)
            if value is not None:
                conditions.append({name: {"$eq": value}})
        if filters.from_date is not None:
            conditions.append({"updated_ts": {"$gte": filters.from_date.timestamp()}})
        if filters.to_date is not None:
            conditions.append({"updated_ts": {"$lte": filters.to_date.timestamp()}})

    if len(conditions) == 1:
        return conditions[0]
    elif len(conditions) > 1:
        return {"$and": conditions}
    return None


def document_chunk(doc_id: str, content: str, metadata: dict) -> Chunk:
    """A document row viewed as one chunk covering the whole document."""
    return Chunk.from_metadata(
        doc_id,
        content,
        {**metadata, "doc_id": doc_id, "section": DOCUMENT_SECTION, "order_index": 0},
    )


def _distance_space(collection) -> Optional[str]:
    """Distance space from legacy metadata or the newer configuration dict."""
    space = (collection.metadata or {}).get("hnsw:space")
    if space:
        return space
    configuration = getattr(collection, "configuration", None) or {}
    hnsw = configuration.get("hnsw") if isinstance(configuration, dict) else None
    if isinstance(hnsw, dict):
        return hnsw.get("space")
    return None


class VectorStore:
    """
    Chunk store for dense search and document bookkeeping.

    Usage:
        store = VectorStore(VectorStoreConfig(persist_directory="data/vectordb"))
        store.open()
        store.upsert_document(doc, embedding)
        store.replace_chunks(doc.id, chunks)
        results = store.search(query_embedding, filters, top_k=60)
        store.close()
    """

    def __init__(self, config: Optional[VectorStoreConfig] = None):
        self.config = config or VectorStoreConfig()
        self._client = None
        self._chunks = None
        self._documents = None

    def open(self):
        """Connect to ChromaDB, create collections and verify their schema."""
        if self._client is not None:
            return
        try:
            persist_dir = Path(self.config.persist_directory)
            persist_dir.mkdir(parents=True, exist_ok=True)

            self._client = chromadb.PersistentClient(
                path=str(persist_dir),
                settings=Settings(anonymized_telemetry=False),
            )
            self._chunks = self._client.get_or_create_collection(
                name=self.config.chunk_collection,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
            self._documents = self._client.get_or_create_collection(
                name=self.config.document_collection,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        except Exception as e:
            self._client = None
            logger.error(f"Failed to initialize VectorStore: {e}")
            raise StoreError(f"Failed to open vector store: {e}") from e

        self.verify_schema()
        logger.info(
            f"VectorStore opened: chunks={self._chunks.count()}, "
            f"documents={self._documents.count()}, path={self.config.persist_directory}"
        )

    def close(self):
        """Release collection handles."""
        self._client = None
        self._chunks = None
        self._documents = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def verify_schema(self):
        """Check distance space and stored vector dimension against the config."""
        for collection in (self._chunks, self._documents):
            space = _distance_space(collection)
            if space is None:
                logger.warning(f"Could not determine distance space of {collection.name}")
            elif space != "cosine":
                raise ConfigError(
                    f"Collection {collection.name} uses {space} distance, cosine required"
                )
            if collection.count() == 0:
                continue
            sample = collection.peek(limit=1)
            embeddings = sample.get("embeddings")
            if embeddings is not None and len(embeddings) > 0:
                dim = len(embeddings[0])
                if dim != self.config.embedding_dimension:
                    raise ConfigError(
                        f"Collection {collection.name} stores {dim}-dim vectors, "
                        f"configured dimension is {self.config.embedding_dimension}"
                    )

    def _require_open(self):
        if self._client is None:
            raise StoreError("VectorStore not initialized - call open() first")

    @property
    def count(self) -> int:
        """Number of stored chunks."""
        return self._chunks.count() if self._chunks else 0

    @property
    def document_count(self) -> int:
        return self._documents.count() if self._documents else 0

    def upsert_document(self, doc: Document, embedding: list[float], text: str = "", chunk_count: int = 0):
        """Insert or replace the document row.

        Rows with chunk_count 0 are matched directly by search_documents().
        """
        self._require_open()
        metadata = {
            "title": doc.title,
            "source_type": doc.source_type,
            "external_url": doc.external_url,
            "tenant_id": doc.tenant_id,
            "product": doc.product,
            "version": doc.version,
            "language": doc.language,
            "duration_seconds": doc.duration_seconds,
            "updated_at": doc.updated_at.isoformat(),
            "updated_ts": doc.updated_at.timestamp(),
            "chunk_count": chunk_count,
        }
        try:
            self._documents.upsert(
                ids=[doc.id],
                embeddings=[embedding],
                documents=[text or doc.title or doc.id],
                metadatas=[{k: v for k, v in metadata.items() if v is not None}],
            )
        except Exception as e:
            raise StoreError(f"Document upsert failed: {e}", document_id=doc.id) from e

    def replace_chunks(self, doc_id: str, chunks: list[Chunk]):
        """
        Delete all chunks of a document, then insert the new set.

        If the insert fails the previous rows are written back so readers
        never observe a half-written chunk set after this call returns.
        """
        self._require_open()
        try:
            previous = self._chunks.get(
                where={"doc_id": doc_id},
                include=["documents", "metadatas", "embeddings"],
            )
            self._chunks.delete(where={"doc_id": doc_id})
        except Exception as e:
            raise StoreError(f"Chunk delete failed: {e}", document_id=doc_id) from e

        if not chunks:
            return

        try:
            self._chunks.add(
                ids=[c.id for c in chunks],
                embeddings=[c.embedding for c in chunks],
                documents=[c.content for c in chunks],
                metadatas=[c.to_metadata() for c in chunks],
            )
        except Exception as e:
            logger.error(f"Chunk insert failed for {doc_id}, restoring previous chunks: {e}")
            self._restore(previous)
            raise StoreError(f"Chunk insert failed: {e}", document_id=doc_id) from e

        logger.debug(f"Stored {len(chunks)} chunks for {doc_id}")

    def _restore(self, snapshot: dict):
        ids = snapshot.get("ids") or []
        if not ids:
            return
        self._chunks.add(
            ids=ids,
            embeddings=snapshot["embeddings"],
            documents=snapshot["documents"],
            metadatas=snapshot["metadatas"],
        )

    def delete_document(self, doc_id: str):
        """Delete a document row and all its chunks."""
        self._require_open()
        try:
            self._chunks.delete(where={"doc_id": doc_id})
            self._documents.delete(ids=[doc_id])
        except Exception as e:
            raise StoreError(f"Delete failed: {e}", document_id=doc_id) from e
        logger.info(f"Deleted document {doc_id}")

    def search(
        self,
        query_embedding: list[float],
        filters: Optional[SearchFilters] = None,
        top_k: int = 60,
    ) -> list[ScoredChunk]:
        """
        Search for similar chunks.

        Args:
            query_embedding: Query embedding vector
            filters: Optional metadata filters
            top_k: Number of results to return

        Returns:
            ScoredChunk list with dense_score = cosine similarity, best first
        """
        self._require_open()
        if top_k <= 0 or self._chunks.count() == 0:
            return []

        try:
            results = self._chunks.query(
                query_embeddings=[query_embedding],
                n_results=min(top_k, self._chunks.count()),
                where=build_where_clause(filters),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            raise StoreError(f"Dense search failed: {e}") from e

        scored = []
        if results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                # ChromaDB returns distance, convert to similarity score
                distance = results["distances"][0][i]
                chunk = Chunk.from_metadata(
                    chunk_id,
                    results["documents"][0][i],
                    results["metadatas"][0][i] or {},
                )
                scored.append(ScoredChunk(chunk=chunk, dense_score=1 - distance))

        return scored

    def search_documents(
        self,
        query_embedding: list[float],
        filters: Optional[SearchFilters] = None,
        top_k: int = 60,
    ) -> list[ScoredChunk]:
        """
        Search whole-document embeddings of documents stored without chunks.

        Each hit is returned as a single pseudo-chunk: id = document id,
        section "General", content = the stored document body.
        """
        self._require_open()
        if top_k <= 0 or self._documents.count() == 0:
            return []

        try:
            results = self._documents.query(
                query_embeddings=[query_embedding],
                n_results=min(top_k, self._documents.count()),
                where=build_where_clause(filters, extra=[{"chunk_count": {"$eq": 0}}]),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            raise StoreError(f"Document search failed: {e}") from e

        scored = []
        if results["ids"] and results["ids"][0]:
            for i, doc_id in enumerate(results["ids"][0]):
                chunk = document_chunk(doc_id, results["documents"][0][i], results["metadatas"][0][i] or {})
                scored.append(ScoredChunk(chunk=chunk, dense_score=1 - results["distances"][0][i]))

        return scored

    def get_siblings(self, doc_id: str, section: str, order_indexes: list[int]) -> list[Chunk]:
        """Point lookup of chunks in one (document, section) by order_index."""
        self._require_open()
        if not order_indexes:
            return []

        where = build_where_clause(None, extra=[
            {"doc_id": {"$eq": doc_id}},
            {"section": {"$eq": section}},
            {"order_index": {"$in": list(order_indexes)}},
        ])
        try:
            results = self._chunks.get(where=where, include=["documents", "metadatas"])
        except Exception as e:
            raise StoreError(f"Sibling lookup failed: {e}", document_id=doc_id) from e

        return self._to_chunks(results)

    def get_document_chunks(self, doc_id: str) -> list[Chunk]:
        """All chunks of a document ordered by chunk_index."""
        self._require_open()
        try:
            results = self._chunks.get(where={"doc_id": doc_id}, include=["documents", "metadatas"])
        except Exception as e:
            raise StoreError(f"Chunk lookup failed: {e}", document_id=doc_id) from e
        return sorted(self._to_chunks(results), key=lambda c: c.chunk_index)

    def get_all_chunks(self) -> list[Chunk]:
        """Every stored chunk, for rebuilding the sparse index."""
        self._require_open()
        try:
            results = self._chunks.get(include=["documents", "metadatas"])
        except Exception as e:
            raise StoreError(f"Chunk scan failed: {e}") from e
        return self._to_chunks(results)

    def get_document(self, doc_id: str) -> Optional[dict]:
        """Stored metadata of a document row, or None."""
        self._require_open()
        try:
            results = self._documents.get(ids=[doc_id], include=["metadatas"])
        except Exception as e:
            raise StoreError(f"Document lookup failed: {e}", document_id=doc_id) from e
        if not results["ids"]:
            return None
        return {"id": results["ids"][0], **(results["metadatas"][0] or {})}

    @staticmethod
    def _to_chunks(results: dict) -> list[Chunk]:
        chunks = []
        for i, chunk_id in enumerate(results.get("ids") or []):
            chunks.append(Chunk.from_metadata(
                chunk_id,
                results["documents"][i] if results.get("documents") else "",
                results["metadatas"][i] if results.get("metadatas") else {},
            ))
        return chunks

    def get_stats(self) -> dict:
        """Get vector store statistics."""
        return {
            "chunk_collection": self.config.chunk_collection,
            "document_collection": self.config.document_collection,
            "chunk_count": self.count,
            "document_count": self.document_count,
            "embedding_dimension": self.config.embedding_dimension,
            "persist_directory": self.config.persist_directory,
        }
