"""
Retrieval module.

Components:
- EmbeddingService: Query/document embeddings via an OpenAI-compatible API
- VectorStore: Documents and chunks in ChromaDB, dense search and sibling lookup
- BM25Index: Sparse keyword search
- HybridRetriever: Parallel dense + sparse search with weighted fusion
- Reranker: Cross-encoder rescoring with a relevance floor
- NeighborExpander: Adjacent chunks within the same document section
"""

from .embedding_service import EmbeddingService, EmbeddingConfig, EmbeddingMode
from .vector_store import VectorStore, VectorStoreConfig
from .bm25_index import BM25Index, BM25Config
from .hybrid_retriever import HybridRetriever, fuse_candidates
from .reranker import Reranker, RerankerConfig
from .neighbor_expander import NeighborExpander

__all__ = [
    "EmbeddingService",
    "EmbeddingConfig",
    "EmbeddingMode",
    "VectorStore",
    "VectorStoreConfig",
    "BM25Index",
    "BM25Config",
    "HybridRetriever",
    "fuse_candidates",
    "Reranker",
    "RerankerConfig",
    "NeighborExpander",
]
