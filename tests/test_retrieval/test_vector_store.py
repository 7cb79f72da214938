"""Tests for the ChromaDB-backed chunk store (temporary persistent directory)."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from hybrid_rag.errors import ConfigError, StoreError
from hybrid_rag.models import Document, SearchFilters
from hybrid_rag.retrieval.vector_store import (
    VectorStore,
    VectorStoreConfig,
    _distance_space,
    build_where_clause,
)

DIM = 8


class FlakyCollection:
    """Collection wrapper whose first add() fails."""

    def __init__(self, real):
        self._real = real
        self.add_calls = 0

    def add(self, **kwargs):
        self.add_calls += 1
        if self.add_calls == 1:
            raise RuntimeError("disk full")
        return self._real.add(**kwargs)

    def __getattr__(self, name):
        return getattr(self._real, name)


def unit_vector(position: int) -> list[float]:
    vector = [0.01] * DIM
    vector[position] = 1.0
    return vector


@pytest.fixture
def doc_chunks(make_chunk):
    def _make(doc_id: str, count: int, section: str = "Discussion", **kwargs):
        return [
            make_chunk(
                chunk_id=f"{doc_id}_chunk_{i}",
                doc_id=doc_id,
                section=section,
                order_index=i,
                chunk_index=i,
                content=f"{doc_id} part {i}",
                embedding=unit_vector(i % DIM),
                **kwargs,
            )
            for i in range(count)
        ]

    return _make


class TestWhereClause:

    def test_none_without_conditions(self):
        assert build_where_clause(None) is None
        assert build_where_clause(SearchFilters()) is None

    def test_single_condition_unwrapped(self):
        assert build_where_clause(SearchFilters(tenant_id="acme")) == {"tenant_id": {"$eq": "acme"}}

    def test_multiple_conditions_anded(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        where = build_where_clause(SearchFilters(product="billing", from_date=start))
        assert where == {"$and": [
            {"product": {"$eq": "billing"}},
            {"updated_ts": {"$gte": start.timestamp()}},
        ]}

    def test_naive_dates_read_as_utc(self):
        filters = SearchFilters(from_date=datetime(2024, 1, 1), to_date=datetime(2024, 2, 1, 12, 30))

        assert filters.from_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert build_where_clause(filters) == {"$and": [
            {"updated_ts": {"$gte": 1704067200.0}},
            {"updated_ts": {"$lte": 1706790600.0}},
        ]}


def test_distance_space_from_metadata_or_configuration():
    assert _distance_space(SimpleNamespace(metadata={"hnsw:space": "cosine"})) == "cosine"
    assert _distance_space(SimpleNamespace(metadata=None, configuration={"hnsw": {"space": "l2"}})) == "l2"
    assert _distance_space(SimpleNamespace(metadata={}, configuration={})) is None


class TestVectorStore:

    def test_requires_open(self):
        with pytest.raises(StoreError):
            VectorStore().search([0.0] * DIM)

    def test_search_returns_similarity(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 3))

        results = vector_store.search(unit_vector(1), top_k=2)

        assert results[0].id == "d1_chunk_1"
        assert results[0].dense_score == pytest.approx(1.0, abs=1e-3)
        assert results[0].chunk.content == "d1 part 1"
        assert results[0].chunk.order_index == 1
        assert len(results) == 2

    def test_search_empty_store(self, vector_store):
        assert vector_store.search(unit_vector(0), top_k=5) == []

    def test_search_filters(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 2, tenant_id="acme"))
        vector_store.replace_chunks("d2", doc_chunks("d2", 2, tenant_id="globex"))

        results = vector_store.search(unit_vector(0), SearchFilters(tenant_id="globex"), top_k=10)
        assert {r.chunk.doc_id for r in results} == {"d2"}

    def test_replace_is_idempotent(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 4))
        vector_store.replace_chunks("d1", doc_chunks("d1", 4))
        assert vector_store.count == 4

        vector_store.replace_chunks("d1", doc_chunks("d1", 2))
        assert [c.id for c in vector_store.get_document_chunks("d1")] == ["d1_chunk_0", "d1_chunk_1"]

    def test_replace_with_empty_set_clears_chunks(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 3))
        vector_store.replace_chunks("d1", [])
        assert vector_store.count == 0

    def test_failed_insert_restores_previous_chunks(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 3))
        vector_store._chunks = FlakyCollection(vector_store._chunks)

        with pytest.raises(StoreError) as exc_info:
            vector_store.replace_chunks("d1", doc_chunks("d1", 5))

        assert exc_info.value.document_id == "d1"
        assert sorted(c.id for c in vector_store.get_document_chunks("d1")) == [
            "d1_chunk_0", "d1_chunk_1", "d1_chunk_2",
        ]

    def test_get_siblings(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 4, section="A"))
        vector_store.replace_chunks("d2", doc_chunks("d2", 4, section="A"))

        siblings = vector_store.get_siblings("d1", "A", [1, 3])
        assert sorted(c.id for c in siblings) == ["d1_chunk_1", "d1_chunk_3"]

    def test_document_upsert_and_delete(self, vector_store, doc_chunks):
        doc = Document(id="d1", title="Weekly sync", tenant_id="acme")
        vector_store.upsert_document(doc, unit_vector(0), text="body")
        vector_store.upsert_document(doc, unit_vector(1), text="body")
        vector_store.replace_chunks("d1", doc_chunks("d1", 2))

        assert vector_store.document_count == 1
        assert vector_store.get_document("d1")["title"] == "Weekly sync"

        vector_store.delete_document("d1")
        assert vector_store.document_count == 0
        assert vector_store.count == 0
        assert vector_store.get_document("d1") is None

    def test_search_documents_only_matches_unchunked(self, vector_store):
        page = Document(id="kb1", title="Refund policy", tenant_id="acme", updated_at=datetime(2024, 3, 1, tzinfo=timezone.utc))
        meeting = Document(id="m1", title="Planning", tenant_id="acme")
        vector_store.upsert_document(page, unit_vector(0), text="Refunds within fourteen days.", chunk_count=0)
        vector_store.upsert_document(meeting, unit_vector(0), text="long transcript", chunk_count=3)

        results = vector_store.search_documents(unit_vector(0), top_k=10)

        assert [r.id for r in results] == ["kb1"]
        hit = results[0]
        assert hit.dense_score == pytest.approx(1.0)
        assert hit.chunk.is_document
        assert (hit.chunk.doc_id, hit.chunk.section, hit.chunk.order_index) == ("kb1", "General", 0)
        assert hit.chunk.content == "Refunds within fourteen days."
        assert hit.chunk.title == "Refund policy"
        assert hit.chunk.tenant_id == "acme"

    def test_search_documents_applies_filters(self, vector_store):
        vector_store.upsert_document(Document(id="kb1", tenant_id="acme"), unit_vector(0), text="x")

        assert vector_store.search_documents(unit_vector(0), SearchFilters(tenant_id="globex")) == []
        assert len(vector_store.search_documents(unit_vector(0), SearchFilters(tenant_id="acme"))) == 1

    def test_chunk_metadata_round_trip(self, vector_store, doc_chunks):
        chunks = doc_chunks("d1", 1, tenant_id="acme", speakers=["Alice", "Bob"], topic="Budget")
        vector_store.replace_chunks("d1", chunks)

        stored = vector_store.get_all_chunks()[0]
        assert stored.tenant_id == "acme"
        assert stored.speakers == ["Alice", "Bob"]
        assert stored.topic == "Budget"
        assert stored.updated_at == chunks[0].updated_at

    def test_dimension_mismatch_detected_on_open(self, tmp_path, doc_chunks):
        path = str(tmp_path / "db")
        store = VectorStore(VectorStoreConfig(persist_directory=path, embedding_dimension=DIM))
        store.open()
        store.replace_chunks("d1", doc_chunks("d1", 1))
        store.close()

        other = VectorStore(VectorStoreConfig(persist_directory=path, embedding_dimension=1024))
        with pytest.raises(ConfigError):
            other.open()

    def test_stats(self, vector_store, doc_chunks):
        vector_store.replace_chunks("d1", doc_chunks("d1", 2))
        stats = vector_store.get_stats()
        assert stats["chunk_count"] == 2
        assert stats["embedding_dimension"] == DIM
