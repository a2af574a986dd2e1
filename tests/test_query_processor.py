"""Tests for grounded query processing."""

from unittest.mock import AsyncMock

import pytest

from grounding_engine.core.exceptions import LLMError
from grounding_engine.models.document_api import IngestionRequest
from grounding_engine.models.grounding_config import GroundingConfig
from grounding_engine.models.response import QueryRequest
from grounding_engine.monitoring.metrics import retrieval_degraded_total
from grounding_engine.services.query_processor import EMPTY_ANSWER_FALLBACK

from conftest import make_vector


async def _seed(ingestion, title="Rest Periods", text=None, **kwargs):
    text = text or "Rest two to five minutes between sets of compound lifts. " * 10
    return await ingestion.ingest(IngestionRequest(title=title, raw_text=text, is_shared=True, **kwargs))


async def test_empty_knowledge_base_falls_back_to_ungrounded_answer(query_processor, llm):
    response = await query_processor.process_query(
        QueryRequest(query_text="How long should I rest?"), GroundingConfig())

    assert response.used_grounding is False
    assert response.citations == []
    assert response.answer_text
    assert len(llm.calls) == 1


async def test_relevant_material_grounds_the_answer(ingestion, query_processor, llm):
    report = await _seed(ingestion)

    response = await query_processor.process_query(
        QueryRequest(query_text="How long should I rest?"), GroundingConfig())

    assert response.used_grounding is True
    assert [c.document_id for c in response.citations] == [report.document_id]
    assert [c.title for c in response.citations] == ["Rest Periods"]
    system = llm.calls[0]["messages"][0]["content"]
    assert "PRIMARY DIRECTIVE" in system


async def test_response_never_exposes_scores_or_chunk_indexes(ingestion, query_processor):
    await _seed(ingestion)

    response = await query_processor.process_query(
        QueryRequest(query_text="How long should I rest?"), GroundingConfig())

    payload = response.model_dump()
    assert set(payload) == {"answer_text", "citations", "used_grounding"}
    assert set(payload["citations"][0]) == {"document_id", "title"}


async def test_query_embedding_failure_degrades_to_ungrounded(
    ingestion, query_processor, provider, llm
):
    await _seed(ingestion)
    provider.fail_on = ["rest?"]
    before = retrieval_degraded_total._value.get()

    response = await query_processor.process_query(
        QueryRequest(query_text="How long should I rest?"), GroundingConfig())

    assert response.used_grounding is False
    assert response.answer_text
    assert retrieval_degraded_total._value.get() == before + 1
    assert len(llm.calls) == 1


async def test_knowledge_base_disabled_skips_retrieval(ingestion, query_processor, provider):
    await _seed(ingestion)
    calls_after_seed = len(provider.inputs)

    response = await query_processor.process_query(
        QueryRequest(query_text="How long should I rest?"),
        GroundingConfig(use_knowledge_base=False),
    )

    assert response.used_grounding is False
    assert len(provider.inputs) == calls_after_seed


async def test_private_documents_only_ground_their_owner(ingestion, query_processor):
    await ingestion.ingest(IngestionRequest(
        title="My Program",
        raw_text="Upper body on Monday, lower body on Thursday, every week. " * 5,
        owner_id="user-1",
    ))

    other = await query_processor.process_query(
        QueryRequest(query_text="What is my split?", requesting_user_id="user-2"), GroundingConfig())
    owner = await query_processor.process_query(
        QueryRequest(query_text="What is my split?", requesting_user_id="user-1"), GroundingConfig())

    assert other.used_grounding is False
    assert owner.used_grounding is True


async def test_empty_model_output_replaced(query_processor, llm):
    llm.answer = "   "

    response = await query_processor.process_query(
        QueryRequest(query_text="Anything?"), GroundingConfig())

    assert response.answer_text == EMPTY_ANSWER_FALLBACK


async def test_generation_failure_propagates(query_processor):
    query_processor.llm_service.generate = AsyncMock(side_effect=LLMError("provider down"))

    with pytest.raises(LLMError):
        await query_processor.process_query(QueryRequest(query_text="Anything?"), GroundingConfig())


async def test_cached_query_embedding_skips_provider(query_processor, provider):
    query_processor.cache_service.get_embedding = AsyncMock(return_value=make_vector(1.0))
    query_processor.cache_service.set_embedding = AsyncMock()

    await query_processor.process_query(QueryRequest(query_text="Cached?"), GroundingConfig())

    assert provider.inputs == []
    query_processor.cache_service.set_embedding.assert_not_awaited()


async def test_fresh_query_embedding_is_cached(query_processor, provider):
    query_processor.cache_service.set_embedding = AsyncMock()

    await query_processor.process_query(QueryRequest(query_text="Fresh?"), GroundingConfig())

    assert provider.inputs == ["Fresh?"]
    query_processor.cache_service.set_embedding.assert_awaited_once()


async def test_end_to_end_1200_characters(ingestion, query_processor, provider):
    text = "alpha" + "y" * 495 + "bravo" + "y" * 495 + "charlie" + "y" * 193
    provider.vectors = {
        "alpha": make_vector(0.8, 0.6),
        "bravo": make_vector(0.9, 0.43589),
        "charlie": make_vector(0.5, 0.86603),
    }
    retrieved = []
    retrieve = query_processor.retriever.retrieve

    async def recording_retrieve(*args, **kwargs):
        result = await retrieve(*args, **kwargs)
        retrieved.append(result)
        return result

    query_processor.retriever.retrieve = recording_retrieve
    report = await _seed(ingestion, title="Long Guide", text=text)

    response = await query_processor.process_query(
        QueryRequest(query_text="Tell me about the guide"),
        GroundingConfig(similarity_floor=0.75, max_chunks=2),
    )

    assert len(text) == 1200
    assert report.chunks_created == 3
    assert report.embeddings_generated == 3
    results = retrieved[0].results
    scores = [r.score for r in results]
    assert len(results) <= 2
    assert [r.chunk_index for r in results] == [1, 0]
    assert all(score >= 0.75 for score in scores)
    assert scores == sorted(scores, reverse=True)
    assert scores[0] > scores[1]
    assert response.used_grounding is True
    assert [c.title for c in response.citations] == ["Long Guide"]
