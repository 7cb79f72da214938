"""
Shared test fixtures for the hybrid-rag test suite.

Provides deterministic stand-ins for the embedding and reranking providers,
chunk/document factories and a ChromaDB store in a temporary directory.
"""

import re
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from hybrid_rag.models import Chunk, Document, ScoredChunk, TranscriptSentence
from hybrid_rag.retrieval.bm25_index import BM25Config, BM25Index
from hybrid_rag.retrieval.embedding_service import EmbeddingConfig, EmbeddingService
from hybrid_rag.retrieval.reranker import Reranker
from hybrid_rag.retrieval.vector_store import VectorStore, VectorStoreConfig

DIM = 8
FIXED_DATE = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _words(text: str) -> list[str]:
    return re.findall(r"\w+", text.lower())


def bag_of_words_vector(text: str, dim: int = DIM) -> list[float]:
    """Deterministic, never-zero vector: word counts hashed into buckets."""
    vector = [0.01] * dim
    for word in _words(text):
        vector[sum(ord(ch) for ch in word) % dim] += 1.0
    return vector


class FakeEmbeddingsAPI:
    """Mimics ``client.embeddings`` of the OpenAI SDK."""

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls: list[list[str]] = []
        self.fail = False

    def create(self, model, input, dimensions=None):
        self.calls.append(list(input))
        if self.fail:
            raise RuntimeError("provider unavailable")
        data = [
            SimpleNamespace(embedding=bag_of_words_vector(text, self.dim), index=i)
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=data)


class FakeCrossEncoder:
    """Scores a pair by the share of query words present in the document."""

    def __init__(self):
        self.calls = 0
        self.fail = False

    def predict(self, pairs, batch_size=32, show_progress_bar=False):
        self.calls += 1
        if self.fail:
            raise RuntimeError("model crashed")
        scores = []
        for query, doc in pairs:
            query_words = set(_words(query))
            doc_words = set(_words(doc))
            scores.append(len(query_words & doc_words) / max(1, len(query_words)))
        return scores


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_embeddings_api():
    return FakeEmbeddingsAPI()


@pytest.fixture
def embedding_service(fake_embeddings_api):
    client = SimpleNamespace(embeddings=fake_embeddings_api)
    return EmbeddingService(EmbeddingConfig(dimension=DIM), client=client)


@pytest.fixture
def fake_cross_encoder():
    return FakeCrossEncoder()


@pytest.fixture
def reranker(fake_cross_encoder):
    return Reranker(model=fake_cross_encoder)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def vector_store(tmp_path):
    store = VectorStore(VectorStoreConfig(
        persist_directory=str(tmp_path / "vectordb"),
        embedding_dimension=DIM,
    ))
    store.open()
    yield store
    store.close()


@pytest.fixture
def bm25_index(tmp_path):
    return BM25Index(BM25Config(index_path=str(tmp_path / "bm25.pkl")))


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_chunk():
    """Factory for chunks with sensible defaults."""

    def _make(
        chunk_id: str = "doc1_chunk_0",
        doc_id: str = "doc1",
        section: str = "Discussion",
        order_index: int = 0,
        content: str = "some content",
        **kwargs,
    ) -> Chunk:
        kwargs.setdefault("title", "Weekly sync")
        kwargs.setdefault("updated_at", FIXED_DATE)
        return Chunk(
            id=chunk_id,
            doc_id=doc_id,
            section=section,
            order_index=order_index,
            content=content,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_scored(make_chunk):
    def _make(chunk_id: str, **scores) -> ScoredChunk:
        return ScoredChunk(chunk=make_chunk(chunk_id=chunk_id), **scores)

    return _make


def make_transcript(doc_id: str, n_sentences: int, duration_minutes: float, **kwargs) -> Document:
    speakers = ["Alice", "Bob"]
    sentences = [
        TranscriptSentence(
            text=f"Sentence {i} about topic{i % 5} and roadmap item{i}.",
            speaker_name=speakers[(i // 3) % 2],
            start_time=i * 10.0,
            end_time=i * 10.0 + 9.0,
        )
        for i in range(n_sentences)
    ]
    kwargs.setdefault("title", f"Meeting {doc_id}")
    kwargs.setdefault("updated_at", FIXED_DATE)
    return Document(
        id=doc_id,
        source_type="transcript",
        sentences=sentences,
        duration_seconds=duration_minutes * 60,
        **kwargs,
    )


@pytest.fixture
def transcript_factory():
    return make_transcript
