"""
Hybrid Retriever - Combines semantic search with BM25 keyword search.

Both searches run concurrently and are merged with a weighted score:
fused = dense_score * w_dense + sparse_score * w_sparse

Documents stored without chunks take part on the dense side through their
whole-document embedding.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from ..config import RagConfig
from ..models import ScoredChunk, SearchFilters
from .bm25_index import BM25Index
from .embedding_service import EmbeddingMode, EmbeddingService
from .parallel import run_all
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


def fuse_candidates(
    dense: list[ScoredChunk],
    sparse: list[ScoredChunk],
    dense_weight: float,
    sparse_weight: float,
) -> list[ScoredChunk]:
    """
    Merge dense and sparse candidates by chunk id.

    A score missing on one side counts as 0. The union is sorted by fused
    score descending, ties by chunk id, and is not truncated.
    """
    merged: dict[str, ScoredChunk] = {}

    for item in dense:
        merged[item.id] = ScoredChunk(chunk=item.chunk, dense_score=item.dense_score)

    for item in sparse:
        existing = merged.get(item.id)
        if existing:
            existing.sparse_score = item.sparse_score
        else:
            merged[item.id] = ScoredChunk(chunk=item.chunk, sparse_score=item.sparse_score)

    for item in merged.values():
        item.fused_score = (
            (item.dense_score or 0.0) * dense_weight
            + (item.sparse_score or 0.0) * sparse_weight
        )

    return sorted(merged.values(), key=lambda x: (-x.fused_score, x.id))


class HybridRetriever:
    """
    Dual retriever: dense and sparse search in parallel, then fusion.

    Usage:
        retriever = HybridRetriever(embedding_service, vector_store, bm25_index, config)
        candidates = retriever.search("what did we decide about pricing?")
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        bm25_index: BM25Index,
        config: Optional[RagConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.bm25_index = bm25_index
        self.config = config or RagConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=3, thread_name_prefix="hybrid-search"
        )

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def search(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
    ) -> list[ScoredChunk]:
        """
        Perform hybrid search combining semantic and BM25.

        Args:
            query: Search query
            filters: Optional metadata filters, applied to both sides

        Returns:
            Fused candidates sorted by fused score
        """
        query_embedding = self.embedding_service.embed(query, EmbeddingMode.QUERY).vector

        dense, documents, sparse = run_all(
            self._executor,
            [
                lambda: self._dense_search(query_embedding, filters),
                lambda: self._document_search(query_embedding, filters),
                lambda: self._sparse_search(query, filters),
            ],
            timeout=self.config.search_timeout_seconds,
            stage="hybrid search",
        )

        fused = fuse_candidates(
            dense + documents,
            sparse,
            self.config.fusion_weight_dense,
            self.config.fusion_weight_sparse,
        )
        logger.info(
            f"Hybrid search: dense={len(dense)}, documents={len(documents)}, "
            f"sparse={len(sparse)}, fused={len(fused)}"
        )
        return fused

    def _dense_search(
        self,
        query_embedding: list[float],
        filters: Optional[SearchFilters],
    ) -> list[ScoredChunk]:
        """Perform semantic search."""
        return self.vector_store.search(
            query_embedding=query_embedding,
            filters=filters,
            top_k=self.config.k_dense,
        )

    def _document_search(
        self,
        query_embedding: list[float],
        filters: Optional[SearchFilters],
    ) -> list[ScoredChunk]:
        """Semantic search over documents that were stored without chunks."""
        return self.vector_store.search_documents(
            query_embedding=query_embedding,
            filters=filters,
            top_k=self.config.k_dense,
        )

    def _sparse_search(
        self,
        query: str,
        filters: Optional[SearchFilters],
    ) -> list[ScoredChunk]:
        """Perform BM25 keyword search."""
        if not self.bm25_index.is_built:
            logger.debug("BM25 index empty - no keyword candidates")
            return []

        return self.bm25_index.search(
            query=query,
            top_k=self.config.k_sparse,
            filters=filters,
        )
