"""
BM25 Index - Sparse keyword search over chunk text.

Uses rank_bm25 (BM25+, whose IDF stays positive on tiny corpora) for keyword
matching, complementing semantic search. The index is kept in memory, rebuilt per document on ingestion and optionally
persisted to disk.
"""

import logging
import os
import pickle
import re
import tempfile
import threading
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

from rank_bm25 import BM25Plus

from ..errors import StoreError
from ..models import Chunk, ScoredChunk, SearchFilters

logger = logging.getLogger(__name__)

STOPWORDS = frozenset(
    "a an and are as at be but by for from has have in is it its of on or that the "
    "this to was were will with we you they he she i our your their".split()
)


@dataclass
class BM25Config:
    """Configuration for BM25 index."""
    index_path: Optional[str] = "data/processed/bm25_index.pkl"
    k1: float = 1.5  # Term frequency saturation
    b: float = 0.75  # Length normalization
    delta: float = 1.0  # BM25+ lower bound per matched term


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens, punctuation, stopwords and 1-char tokens dropped."""
    text = re.sub(r"[^\w\s]", " ", text or "")
    return [t for t in text.lower().split() if len(t) > 1 and t not in STOPWORDS]


class BM25Index:
    """
    BM25 sparse keyword index over stored chunks.

    Usage:
        index = BM25Index()
        index.build_from_chunks(chunks)
        results = index.search("pricing decision", top_k=40, filters=SearchFilters(tenant_id="acme"))
    """

    def __init__(self, config: Optional[BM25Config] = None):
        self.config = config or BM25Config()
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()  # serializes snapshot + write of the pickle
        self._index = None
        self._chunks: dict[str, Chunk] = {}  # id -> chunk, all indexed chunks
        self._ordered: list[Chunk] = []  # corpus order of the current index

    def build_from_chunks(self, chunks: list[Chunk], save: bool = False):
        """
        Build BM25 index from chunks, replacing any previous corpus.

        Args:
            chunks: Chunks to index
            save: Whether to save index to disk
        """
        with self._lock:
            self._chunks = {c.id: c for c in chunks}
            self._rebuild()
        logger.info(f"BM25 index built: {len(self._ordered)} chunks")

        if save:
            self.save()

    def replace_document(self, doc_id: str, chunks: list[Chunk], save: bool = False):
        """Swap one document's chunks in the corpus and rebuild."""
        with self._lock:
            self._chunks = {cid: c for cid, c in self._chunks.items() if c.doc_id != doc_id}
            for chunk in chunks:
                self._chunks[chunk.id] = chunk
            self._rebuild()

        if save:
            self.save()

    def remove_document(self, doc_id: str, save: bool = False):
        self.replace_document(doc_id, [], save=save)

    def _rebuild(self):
        """Rebuild the BM25 model (called with lock held)."""
        ordered = sorted(self._chunks.values(), key=lambda c: c.id)
        if not ordered:
            self._index = None
            self._ordered = []
            return
        corpus = [tokenize(c.content) for c in ordered]
        self._index = BM25Plus(corpus, k1=self.config.k1, b=self.config.b, delta=self.config.delta)
        self._ordered = ordered

    def search(
        self,
        query: str,
        top_k: int = 40,
        filters: Optional[SearchFilters] = None,
    ) -> list[ScoredChunk]:
        """
        Search using BM25.

        Args:
            query: Search query
            top_k: Number of results
            filters: Optional metadata filters

        Returns:
            ScoredChunk list with sparse_score normalized by the best hit
        """
        with self._lock:
            index, ordered = self._index, self._ordered

        if index is None or top_k <= 0:
            return []

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        scores = index.get_scores(query_tokens)
        term_counts = index.doc_freqs

        hits: list[tuple[Chunk, float]] = []
        # Stable sort keeps chunk-id order among equal scores
        for idx in sorted(range(len(ordered)), key=lambda i: -scores[i]):
            if len(hits) >= top_k:
                break
            # BM25+ scores every chunk above zero; chunks holding a query term rank first
            if not any(t in term_counts[idx] for t in query_tokens):
                break
            score = float(scores[idx])
            chunk = ordered[idx]
            if filters is not None and not filters.matches(chunk):
                continue
            hits.append((chunk, score))

        if not hits:
            return []

        best = hits[0][1]
        return [ScoredChunk(chunk=chunk, sparse_score=score / best) for chunk, score in hits]

    @property
    def is_built(self) -> bool:
        """Check if index is built."""
        return self._index is not None

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def load(self) -> bool:
        """
        Load index from disk.

        Returns:
            True if loaded successfully, False otherwise
        """
        if not self.config.index_path:
            return False
        path = Path(self.config.index_path)
        if not path.exists():
            logger.warning(f"BM25 index not found at {path}")
            return False

        try:
            with open(path, "rb") as f:
                data = pickle.load(f)
            chunks = [
                Chunk.from_metadata(chunk_id, content, metadata)
                for chunk_id, content, metadata in data["chunks"]
            ]
        except (OSError, pickle.UnpicklingError, KeyError, ValueError, EOFError) as e:
            logger.error(f"Failed to load BM25 index: {e}")
            return False

        with self._lock:
            self._chunks = {c.id: c for c in chunks}
            self._rebuild()

        logger.info(f"BM25 index loaded: {len(self._chunks)} chunks")
        return True

    def save(self):
        """
        Save index corpus to disk.

        The pickle is written to a temporary file and swapped in with
        os.replace, so readers never see a partial file.

        Raises:
            StoreError: if the file cannot be written
        """
        if not self.config.index_path:
            return
        path = Path(self.config.index_path)

        with self._save_lock:
            with self._lock:
                data = {
                    "chunks": [(c.id, c.content, c.to_metadata()) for c in self._chunks.values()],
                    "config": {"k1": self.config.k1, "b": self.config.b, "delta": self.config.delta},
                }

            tmp_name = None
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile("wb", dir=path.parent, suffix=".tmp", delete=False) as f:
                    tmp_name = f.name
                    pickle.dump(data, f)
                os.replace(tmp_name, path)
            except OSError as e:
                if tmp_name and os.path.exists(tmp_name):
                    os.remove(tmp_name)
                logger.error(f"Failed to save BM25 index to {path}: {e}")
                raise StoreError(f"Failed to save BM25 index: {e}") from e

        logger.debug(f"BM25 index saved to {path}")

    def get_stats(self) -> dict:
        """Get index statistics."""
        return {
            "chunk_count": len(self._chunks),
            "index_path": self.config.index_path,
            "is_built": self.is_built,
        }
