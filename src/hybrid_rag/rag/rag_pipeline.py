"""
RAG Engine - Hybrid retrieval and ingestion behind one consumer interface.

Retrieval pipeline:
1. Query embedding (query mode)
2. Dense + sparse search in parallel, weighted fusion
3. Cross-encoder reranking with a relevance floor
4. Neighbor expansion within each (document, section)
5. Context assembly with S1..Sn citation tags

The engine owns its store handles and thread pool; open() acquires them,
close() releases them.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..config import RagConfig, get_rag_config, load_config
from ..errors import ConfigError, RerankError, StoreError
from ..models import Document, IndexingResult, RetrievalContext, ScoredChunk, SearchFilters
from ..ingestion.document_indexer import DocumentIndexer
from ..processing.chunker import ChunkingConfig
from ..retrieval import (
    EmbeddingService, EmbeddingConfig,
    VectorStore, VectorStoreConfig,
    BM25Index, BM25Config,
    HybridRetriever,
    Reranker, RerankerConfig,
    NeighborExpander,
)
from .context_assembler import ContextAssembler

logger = logging.getLogger(__name__)


def _section(config_cls, values: Optional[dict], **defaults):
    """Build a component config from a YAML section, ignoring unknown keys."""
    known = {k: v for k, v in (values or {}).items() if k in config_cls.__dataclass_fields__}
    return config_cls(**{**defaults, **known})


@dataclass
class EngineConfig:
    """Configuration for the engine and every component it owns."""
    rag: RagConfig = field(default_factory=RagConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    bm25: BM25Config = field(default_factory=BM25Config)
    reranker: RerankerConfig = field(default_factory=RerankerConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)

    @classmethod
    def from_file(
        cls,
        path: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "EngineConfig":
        """
        Resolve every section of config.yaml plus RAG_* environment overrides.

        The vector store dimension follows the embedding dimension unless
        the ``vector_store`` section sets it.
        """
        data = load_config(path)
        embedding = _section(EmbeddingConfig, data.get("embedding"))
        return cls(
            rag=get_rag_config(env=env, config_path=path),
            embedding=embedding,
            vector_store=_section(
                VectorStoreConfig,
                data.get("vector_store"),
                embedding_dimension=embedding.dimension,
            ),
            bm25=_section(BM25Config, data.get("bm25")),
            reranker=_section(RerankerConfig, data.get("reranker")),
            chunking=_section(ChunkingConfig, data.get("chunking")),
        )


class RagEngine:
    """
    Consumer interface: upsert documents, retrieve citable context.

    Usage:
        with RagEngine.from_env() as engine:
            engine.upsert(document)
            context = engine.retrieve("what did we decide about pricing?")
            print(context.context_text)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        embedding_service: Optional[EmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        bm25_index: Optional[BM25Index] = None,
        reranker: Optional[Reranker] = None,
    ):
        """
        Args:
            config: Engine configuration (default: all component defaults)
            embedding_service: Injected provider, built on open() when None
            vector_store: Injected store, built on open() when None
            bm25_index: Injected sparse index, built on open() when None
            reranker: Injected reranker, loaded on open() when None
        """
        self.config = config or EngineConfig()
        self.embedding_service = embedding_service
        self.vector_store = vector_store or VectorStore(self.config.vector_store)
        self.bm25_index = bm25_index or BM25Index(self.config.bm25)
        self.reranker = reranker

        self._executor: Optional[ThreadPoolExecutor] = None
        self.retriever: Optional[HybridRetriever] = None
        self.expander: Optional[NeighborExpander] = None
        self.assembler = ContextAssembler(self.config.rag.max_context_chunks)
        self.indexer: Optional[DocumentIndexer] = None

    @classmethod
    def from_env(cls, config_path: Optional[str] = None) -> "RagEngine":
        """Engine configured from config.yaml and the RAG_* environment."""
        return cls(EngineConfig.from_file(config_path))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self):
        """Connect the store, load the sparse index and start the worker pool."""
        if self._executor is not None:
            return
        rag = self.config.rag

        if self.embedding_service is None:
            self.embedding_service = EmbeddingService(self.config.embedding)
        if self.reranker is None:
            try:
                self.reranker = Reranker(self.config.reranker)
            except Exception as e:
                raise ConfigError(f"Failed to load reranker {self.config.reranker.model_name}: {e}") from e

        self.vector_store.open()
        self._load_sparse_index()

        self._executor = ThreadPoolExecutor(max_workers=rag.max_workers, thread_name_prefix="rag")
        self.retriever = HybridRetriever(
            embedding_service=self.embedding_service,
            vector_store=self.vector_store,
            bm25_index=self.bm25_index,
            config=rag,
            executor=self._executor,
        )
        self.expander = NeighborExpander(
            self.vector_store,
            self._executor,
            window=rag.neighbor_window,
            timeout=rag.search_timeout_seconds,
        )
        self.indexer = DocumentIndexer(
            embedding_service=self.embedding_service,
            vector_store=self.vector_store,
            bm25_index=self.bm25_index,
            chunking_config=self.config.chunking,
        )
        logger.info(f"RagEngine opened: {self.vector_store.count} chunks, workers={rag.max_workers}")

    def _load_sparse_index(self):
        """Load the persisted BM25 corpus, rebuilding it from the store when stale."""
        self.bm25_index.load()
        stored = self.vector_store.count
        if self.bm25_index.chunk_count == stored:
            return
        logger.warning(
            f"Rebuilding BM25 index from store ({self.bm25_index.chunk_count} indexed, {stored} stored)"
        )
        self.bm25_index.build_from_chunks(self.vector_store.get_all_chunks(), save=True)

    def close(self):
        """Stop the worker pool and release store handles."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self.vector_store.close()
        logger.info("RagEngine closed")

    def __enter__(self) -> "RagEngine":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def is_open(self) -> bool:
        return self._executor is not None

    def _require_open(self):
        if self._executor is None:
            raise StoreError("RagEngine not opened - call open() first")

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def upsert(self, document: Document) -> IndexingResult:
        """Index or re-index a document."""
        self._require_open()
        return self.indexer.upsert(document)

    def delete(self, document_id: str):
        """Remove a document and everything derived from it."""
        self._require_open()
        self.indexer.delete(document_id)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(self, query: str, filters: Optional[SearchFilters] = None) -> RetrievalContext:
        """
        Retrieve citable context for a query.

        Args:
            query: Natural-language query
            filters: Optional metadata filters applied to both searches

        Returns:
            RetrievalContext, empty when nothing matches or survives reranking
        """
        self._require_open()
        start_time = time.time()

        candidates = self.retriever.search(query, filters)
        if not candidates:
            logger.info("No candidates from hybrid search")
            return RetrievalContext()

        t0 = time.time()
        anchors = self._rerank(query, candidates)
        rerank_time = (time.time() - t0) * 1000
        if not anchors:
            logger.info(f"No candidates above rerank threshold {self.config.rag.rerank_score_threshold}")
            return RetrievalContext()

        expanded = self.expander.expand(anchors)
        context = self.assembler.build(expanded)

        total_time = (time.time() - start_time) * 1000
        logger.info(
            f"Retrieved {len(context.chunks)} chunks "
            f"(candidates={len(candidates)}, anchors={len(anchors)}, expanded={len(expanded)}) "
            f"in {total_time:.0f}ms (rerank {rerank_time:.0f}ms)"
        )
        return context

    def _rerank(self, query: str, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        """Rerank, or fall back to the fused order when the policy allows it."""
        rag = self.config.rag
        try:
            return self._rerank_with_timeout(query, candidates)
        except RerankError as e:
            if rag.rerank_failure_policy != "fusion":
                raise
            logger.warning(f"Reranking failed, using fused order: {e}")
            return candidates[:rag.rerank_top_k]

    def _rerank_with_timeout(self, query: str, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        rag = self.config.rag
        future = self._executor.submit(
            self.reranker.rerank,
            query,
            candidates,
            rag.rerank_top_k,
            rag.rerank_score_threshold,
        )
        try:
            return future.result(timeout=rag.rerank_timeout_seconds)
        except FutureTimeout as e:
            future.cancel()
            raise RerankError(f"Reranking timed out after {rag.rerank_timeout_seconds}s") from e

    def get_stats(self) -> dict:
        """Store and index statistics."""
        return {
            "vector_store": self.vector_store.get_stats(),
            "bm25": self.bm25_index.get_stats(),
            "config": {
                "k_dense": self.config.rag.k_dense,
                "k_sparse": self.config.rag.k_sparse,
                "rerank_top_k": self.config.rag.rerank_top_k,
                "max_context_chunks": self.config.rag.max_context_chunks,
            },
        }
