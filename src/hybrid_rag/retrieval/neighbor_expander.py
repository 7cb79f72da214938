"""
Neighbor Expander - Pull in chunks adjacent to each surviving anchor.

Siblings are looked up at order_index ± k (k = 1..window) inside the same
(document, section); expansion never crosses a document or section boundary.
"""

import logging
from concurrent.futures import Executor

from ..models import Chunk, ScoredChunk
from .parallel import run_all
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


def neighbor_offsets(order_index: int, window: int) -> list[int]:
    """order_index ± 1..window, negatives dropped."""
    indexes = []
    for k in range(1, window + 1):
        indexes.extend([order_index - k, order_index + k])
    return [i for i in indexes if i >= 0]


class NeighborExpander:
    """
    Expand anchors with their positional neighbors.

    Usage:
        expander = NeighborExpander(vector_store, executor, window=1)
        expanded = expander.expand(reranked)
    """

    def __init__(
        self,
        vector_store: VectorStore,
        executor: Executor,
        window: int = 1,
        timeout: float = 10.0,
    ):
        self.vector_store = vector_store
        self.executor = executor
        self.window = window
        self.timeout = timeout

    def expand(self, anchors: list[ScoredChunk]) -> list[ScoredChunk]:
        """
        Add neighbors of every anchor, deduplicated by chunk id.

        Anchors keep their scores and position; neighbors are appended
        without scores.
        """
        expanded: dict[str, ScoredChunk] = {a.id: a for a in anchors}
        if self.window <= 0 or not anchors:
            return list(expanded.values())

        # Whole-document matches have no siblings
        lookups = [a.chunk for a in anchors if a.chunk.order_index is not None and not a.chunk.is_document]
        if not lookups:
            return list(expanded.values())
        results = run_all(
            self.executor,
            [lambda c=chunk: self._siblings(c) for chunk in lookups],
            timeout=self.timeout,
            stage="neighbor expansion",
        )

        added = 0
        for siblings in results:
            for sibling in siblings:
                if sibling.id not in expanded:
                    expanded[sibling.id] = ScoredChunk(chunk=sibling)
                    added += 1

        logger.info(f"Neighbor expansion: {len(anchors)} anchors, {added} neighbors added")
        return list(expanded.values())

    def _siblings(self, anchor: Chunk) -> list[Chunk]:
        indexes = neighbor_offsets(anchor.order_index, self.window)
        siblings = self.vector_store.get_siblings(anchor.doc_id, anchor.section, indexes)
        # Same document and section only
        return [
            s for s in siblings
            if s.doc_id == anchor.doc_id and s.section == anchor.section and s.order_index in indexes
        ]
