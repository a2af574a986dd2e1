"""Tests for similarity ranking and the retriever."""

import uuid

import pytest

from grounding_engine.core.exceptions import EmbeddingError
from grounding_engine.models.document import CandidateChunk, Chunk, DocumentStatus
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.models.retrieval import RelevanceClass
from grounding_engine.services.retrieval import Retriever, cosine_similarity, rank_candidates

from conftest import make_vector


def _candidate(vector, index=0, document_id=None, title="Doc"):
    return CandidateChunk(
        chunk_id=str(uuid.uuid4()),
        document_id=document_id or uuid.uuid4(),
        title=title,
        chunk_index=index,
        content=f"fragment {index}",
        embedding=vector,
    )


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_norm_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_shape_mismatch_scores_zero(self):
        assert cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0]) == 0.0


class TestRankCandidates:
    query = [1.0, 0.0]

    def test_scores_below_floor_discarded(self):
        config = GroundingConfig(similarity_floor=0.5, max_chunks=10)
        candidates = [_candidate([1.0, 0.0], 0), _candidate([0.0, 1.0], 1), _candidate([1.0, 1.0], 2)]

        result = rank_candidates(self.query, candidates, config)

        assert [r.chunk_index for r in result.results] == [0, 2]
        assert all(r.score >= 0.5 for r in result.results)

    def test_sorted_descending_and_truncated(self):
        config = GroundingConfig(similarity_floor=0.01, max_chunks=2)
        candidates = [_candidate([1.0, 1.0], 0), _candidate([1.0, 0.0], 1), _candidate([1.0, 0.2], 2)]

        result = rank_candidates(self.query, candidates, config)

        assert [r.chunk_index for r in result.results] == [1, 2]
        assert result.results[0].score >= result.results[1].score

    def test_ties_keep_insertion_order(self):
        config = GroundingConfig(similarity_floor=0.01, max_chunks=5)
        candidates = [_candidate([2.0, 0.0], i) for i in range(4)]

        result = rank_candidates(self.query, candidates, config)

        assert [r.chunk_index for r in result.results] == [0, 1, 2, 3]

    def test_relevance_classification_is_monotonic(self):
        config = GroundingConfig(similarity_floor=0.1, high_relevance_floor=0.9, max_chunks=20)
        candidates = [_candidate([1.0, y], i) for i, y in enumerate([0.0, 0.2, 0.5, 1.0, 2.0, 4.0])]

        result = rank_candidates(self.query, candidates, config)

        for higher, lower in zip(result.results, result.results[1:]):
            if lower.relevance == RelevanceClass.HIGH:
                assert higher.relevance == RelevanceClass.HIGH
        for r in result.results:
            expected = RelevanceClass.HIGH if r.score >= 0.9 else RelevanceClass.STANDARD
            assert r.relevance == expected
        assert result.has_high_relevance

    def test_nothing_above_floor_is_explicit_no_grounding(self):
        config = GroundingConfig(similarity_floor=0.99)

        result = rank_candidates(self.query, [_candidate([0.0, 1.0])], config)

        assert result.results == []
        assert result.no_grounding is True

    def test_empty_candidates(self):
        result = rank_candidates(self.query, [], GroundingConfig())

        assert result.no_grounding is True


class TestRetriever:
    async def test_wrong_query_dimensionality_rejected(self, vector_store):
        with pytest.raises(EmbeddingError):
            await Retriever(vector_store).retrieve([1.0, 0.0], GroundingConfig())

    async def test_only_visible_ready_documents_are_searched(self, database, vector_store):
        shared = await database.create_document("Shared", "x", is_shared=True)
        private = await database.create_document("Mine", "x", owner_id="user-1")
        pending = await database.create_document("Pending", "x", is_shared=True)
        for document in (shared, private):
            await database.set_status(document.id, DocumentStatus.READY)
        for document in (shared, private, pending):
            await vector_store.replace_chunks(
                document.id,
                [Chunk(id=f"{document.id}-0", document_id=document.id, chunk_index=0,
                       content=document.title, embedding=make_vector(1.0))],
            )
        retriever = Retriever(vector_store)

        anonymous = await retriever.retrieve(make_vector(1.0), GroundingConfig())
        owner = await retriever.retrieve(make_vector(1.0), GroundingConfig(), user_id="user-1")

        assert [r.title for r in anonymous.results] == ["Shared"]
        assert [r.title for r in owner.results] == ["Shared", "Mine"]
