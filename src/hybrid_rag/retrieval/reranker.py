"""
Cross-Encoder Reranker - Re-score fused candidates with a cross-encoder model.

Uses sentence-transformers CrossEncoder. Single-label models are sigmoid
activated, so scores fall in [0, 1] and a fixed relevance floor applies.
"""

import logging
import math
from typing import Optional
from dataclasses import dataclass

from sentence_transformers import CrossEncoder

from ..errors import RerankError
from ..models import RerankResult, ScoredChunk

logger = logging.getLogger(__name__)


@dataclass
class RerankerConfig:
    """Configuration for cross-encoder reranker."""
    model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    # Maximum sequence length (query + document)
    max_length: int = 512
    # Device for inference (None = auto-detect)
    device: Optional[str] = None
    batch_size: int = 32


class Reranker:
    """
    Cross-encoder reranker.

    Cross-encoders jointly encode query and document, providing
    more accurate relevance scores than bi-encoders (embeddings).

    Usage:
        reranker = Reranker()
        survivors = reranker.rerank(query, fused, top_k=12, threshold=0.2)
    """

    def __init__(self, config: Optional[RerankerConfig] = None, model=None):
        self.config = config or RerankerConfig()
        self._model = model
        if self._model is None:
            logger.info(f"Loading cross-encoder: {self.config.model_name}")
            self._model = CrossEncoder(
                self.config.model_name,
                max_length=self.config.max_length,
                device=self.config.device,
            )
            logger.info("Cross-encoder loaded successfully")

    def score(self, query: str, documents: list[str]) -> list[RerankResult]:
        """
        Score (query, document) pairs.

        Returns:
            One RerankResult per document, indexable back to ``documents``
        """
        if not documents:
            return []

        pairs = [(query, doc) for doc in documents]
        try:
            scores = self._model.predict(
                pairs,
                batch_size=self.config.batch_size,
                show_progress_bar=False,
            )
        except Exception as e:
            logger.error(f"Cross-encoder scoring failed: {e}")
            raise RerankError(f"Reranking failed: {e}") from e

        scores = [float(s) for s in scores]
        if len(scores) != len(documents):
            raise RerankError(f"Reranker returned {len(scores)} scores for {len(documents)} documents")
        if not all(math.isfinite(s) for s in scores):
            raise RerankError("Reranker returned non-finite scores")

        return [RerankResult(index=i, score=s) for i, s in enumerate(scores)]

    def rerank(
        self,
        query: str,
        candidates: list[ScoredChunk],
        top_k: int,
        threshold: float,
    ) -> list[ScoredChunk]:
        """
        Rerank the leading fused candidates and apply the relevance floor.

        Args:
            query: The search query
            candidates: Fused candidates, best first
            top_k: How many leading candidates to send to the model
            threshold: Minimum rerank score to survive

        Returns:
            Surviving candidates sorted by rerank_score
        """
        head = candidates[:max(0, top_k)]
        if not head:
            return []

        results = self.score(query, [c.chunk.content for c in head])

        ranked = []
        for result in results:
            if not 0 <= result.index < len(head):
                raise RerankError(f"Reranker returned out-of-range index {result.index}")
            if result.score < threshold:
                continue
            item = head[result.index]
            item.rerank_score = result.score
            ranked.append(item)

        # Sort by rerank score (descending)
        ranked.sort(key=lambda x: (-x.rerank_score, x.id))
        logger.info(f"Reranked {len(head)} candidates, {len(ranked)} above {threshold}")
        return ranked
