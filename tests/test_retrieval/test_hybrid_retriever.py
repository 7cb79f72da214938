"""Tests for weighted fusion and the dual retriever."""

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from hybrid_rag.config import RagConfig
from hybrid_rag.errors import StoreError
from hybrid_rag.models import ScoredChunk, SearchFilters
from hybrid_rag.retrieval.hybrid_retriever import HybridRetriever, fuse_candidates


class TestFuseCandidates:

    def test_weighted_union(self, make_scored):
        dense = [make_scored("A", dense_score=0.9), make_scored("B", dense_score=0.4)]
        sparse = [make_scored("B", sparse_score=0.8), make_scored("C", sparse_score=0.6)]

        fused = fuse_candidates(dense, sparse, 0.7, 0.3)

        assert [c.id for c in fused] == ["A", "B", "C"]
        assert [c.fused_score for c in fused] == pytest.approx([0.63, 0.52, 0.18])
        assert fused[1].dense_score == 0.4
        assert fused[1].sparse_score == 0.8
        assert fused[2].dense_score is None

    def test_ties_broken_by_chunk_id(self, make_scored):
        dense = [make_scored("z", dense_score=0.5), make_scored("a", dense_score=0.5)]
        fused = fuse_candidates(dense, [], 1.0, 1.0)
        assert [c.id for c in fused] == ["a", "z"]

    def test_empty_inputs(self):
        assert fuse_candidates([], [], 0.7, 0.3) == []

    def test_no_cap(self, make_scored):
        dense = [make_scored(f"d{i}", dense_score=i / 100) for i in range(70)]
        sparse = [make_scored(f"s{i}", sparse_score=i / 100) for i in range(50)]
        assert len(fuse_candidates(dense, sparse, 0.7, 0.3)) == 120

    def test_inputs_not_mutated(self, make_scored):
        dense = [make_scored("A", dense_score=0.9)]
        fuse_candidates(dense, [], 0.7, 0.3)
        assert dense[0].fused_score is None


class TestHybridRetriever:

    @pytest.fixture
    def mocks(self, make_scored):
        embedding_service = MagicMock()
        embedding_service.embed.return_value.vector = [0.1] * 8
        vector_store = MagicMock()
        vector_store.search.return_value = [make_scored("A", dense_score=0.9)]
        vector_store.search_documents.return_value = []
        bm25_index = MagicMock()
        bm25_index.is_built = True
        bm25_index.search.return_value = [make_scored("B", sparse_score=1.0)]
        return embedding_service, vector_store, bm25_index

    def test_search_fuses_both_sides(self, mocks):
        embedding_service, vector_store, bm25_index = mocks
        retriever = HybridRetriever(embedding_service, vector_store, bm25_index, RagConfig())

        results = retriever.search("pricing", SearchFilters(tenant_id="acme"))
        retriever.close()

        assert [r.id for r in results] == ["A", "B"]
        assert results[0].fused_score == pytest.approx(0.63)
        assert results[1].fused_score == pytest.approx(0.3)

        filters = SearchFilters(tenant_id="acme")
        vector_store.search.assert_called_once_with(query_embedding=[0.1] * 8, filters=filters, top_k=60)
        bm25_index.search.assert_called_once_with(query="pricing", top_k=40, filters=filters)

    def test_document_matches_join_dense_side(self, mocks, make_chunk):
        embedding_service, vector_store, bm25_index = mocks
        page = make_chunk(chunk_id="kb1", doc_id="kb1", section="General", content="Refund policy")
        vector_store.search_documents.return_value = [ScoredChunk(chunk=page, dense_score=0.8)]
        retriever = HybridRetriever(embedding_service, vector_store, bm25_index, RagConfig())

        results = retriever.search("refunds")
        retriever.close()

        assert [r.id for r in results] == ["A", "kb1", "B"]
        assert results[1].fused_score == pytest.approx(0.56)
        assert results[1].chunk.is_document
        vector_store.search_documents.assert_called_once_with(query_embedding=[0.1] * 8, filters=None, top_k=60)

    def test_empty_sparse_index_is_not_an_error(self, mocks):
        embedding_service, vector_store, bm25_index = mocks
        bm25_index.is_built = False
        retriever = HybridRetriever(embedding_service, vector_store, bm25_index)

        results = retriever.search("pricing")
        retriever.close()

        assert [r.id for r in results] == ["A"]
        bm25_index.search.assert_not_called()

    def test_store_failure_raises_store_error(self, mocks):
        embedding_service, vector_store, bm25_index = mocks
        vector_store.search.side_effect = RuntimeError("connection reset")
        retriever = HybridRetriever(embedding_service, vector_store, bm25_index)

        with pytest.raises(StoreError):
            retriever.search("pricing")
        retriever.close()

    def test_search_timeout(self, mocks):
        embedding_service, vector_store, bm25_index = mocks
        vector_store.search.side_effect = lambda **kwargs: time.sleep(0.5) or []
        config = RagConfig(search_timeout_seconds=0.05)

        with ThreadPoolExecutor(max_workers=2) as executor:
            retriever = HybridRetriever(embedding_service, vector_store, bm25_index, config, executor=executor)
            with pytest.raises(StoreError, match="timed out"):
                retriever.search("pricing")
