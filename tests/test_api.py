"""HTTP tests for the knowledge and query services."""

import uuid
from unittest.mock import AsyncMock

import httpx
import pytest

from grounding_engine import knowledge_service, query_service
from grounding_engine.core.dependencies import services
from grounding_engine.core.exceptions import LLMError
from grounding_engine.models.document import DocumentStatus
from grounding_engine.services.auditor import ConsistencyAuditor


@pytest.fixture
def wired(monkeypatch, database, vector_store, embedding_service, ingestion, query_processor):
    monkeypatch.setattr(services, "database", database)
    monkeypatch.setattr(services, "vector_store", vector_store)
    monkeypatch.setattr(services, "ingestion", ingestion)
    monkeypatch.setattr(services, "auditor", ConsistencyAuditor(vector_store, embedding_service))
    monkeypatch.setattr(services, "query_processor", query_processor)
    return services


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def test_create_document_returns_ingestion_report(wired):
    async with _client(knowledge_service.app) as client:
        response = await client.post("/api/documents", json={
            "title": "Rep Ranges",
            "raw_text": "Five to ten repetitions per set close to failure build muscle. " * 10,
            "is_shared": True,
        })

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == DocumentStatus.READY.value
    assert body["chunks_created"] == body["embeddings_generated"] == 2


async def test_upload_plain_text_file(wired):
    content = ("Creatine monohydrate at three to five grams per day is well studied. " * 10).encode()

    async with _client(knowledge_service.app) as client:
        response = await client.post(
            "/api/documents/upload",
            data={"title": "Creatine", "is_shared": "true"},
            files={"file": ("creatine.txt", content, "text/plain")},
        )

    assert response.status_code == 201
    assert response.json()["status"] == DocumentStatus.READY.value


async def test_get_missing_document_is_404(wired):
    async with _client(knowledge_service.app) as client:
        response = await client.get(f"/api/documents/{uuid.uuid4()}")

    assert response.status_code == 404


async def test_reprocess_missing_document_is_404(wired):
    async with _client(knowledge_service.app) as client:
        response = await client.post(f"/api/documents/{uuid.uuid4()}/reprocess")

    assert response.status_code == 404


async def test_list_and_delete_documents(wired):
    async with _client(knowledge_service.app) as client:
        created = await client.post("/api/documents", json={
            "title": "Sleep", "raw_text": "Seven to nine hours of sleep supports recovery and growth. " * 3,
        })
        document_id = created.json()["document_id"]

        listed = await client.get("/api/documents")
        deleted = await client.delete(f"/api/documents/{document_id}")
        missing = await client.get(f"/api/documents/{document_id}")

    assert listed.json()["total"] == 1
    assert listed.json()["documents"][0]["id"] == document_id
    assert deleted.status_code == 204
    assert missing.status_code == 404


async def test_audit_and_repair(wired, provider):
    provider.fail_on = ["Mobility"]
    async with _client(knowledge_service.app) as client:
        await client.post("/api/documents", json={
            "title": "Mobility", "raw_text": "Hip mobility drills before squatting improve depth. " * 3,
        })
        provider.fail_on = []

        audit = await client.get("/api/admin/audit")
        repair = await client.post("/api/admin/audit")
        after = await client.get("/api/admin/audit")

    assert audit.status_code == 200
    assert audit.json()["missing"] == 1
    assert audit.json()["affected_documents"][0]["title"] == "Mobility"
    assert repair.json()["processed"] == 1
    assert repair.json()["skipped"] == 0
    assert after.json()["missing"] == 0


async def test_config_out_of_bounds_rejected_and_not_persisted(wired, database):
    async with _client(knowledge_service.app) as client:
        bad_floor = await client.put("/api/admin/config", json={"similarity_floor": 0})
        unknown = await client.put("/api/admin/config", json={"top_k": 3})
        current = await client.get("/api/admin/config")

    assert bad_floor.status_code == 422
    assert unknown.status_code == 422
    assert database.config is None
    assert current.json()["similarity_floor"] == 0.6


async def test_config_update_persisted(wired, database):
    async with _client(knowledge_service.app) as client:
        response = await client.put("/api/admin/config", json={"max_chunks": 8, "domain": "nutrition"})

    assert response.status_code == 200
    assert database.config.max_chunks == 8
    assert database.config.domain == "nutrition"


async def test_query_returns_answer_and_citations(wired):
    async with _client(knowledge_service.app) as client:
        await client.post("/api/documents", json={
            "title": "Deload", "is_shared": True,
            "raw_text": "A deload week every six to eight weeks manages accumulated fatigue. " * 3,
        })
    async with _client(query_service.app) as client:
        response = await client.post("/query", json={"query_text": "When should I deload?"})

    assert response.status_code == 200
    body = response.json()
    assert body["used_grounding"] is True
    assert body["citations"][0]["title"] == "Deload"
    assert body["answer_text"]


async def test_query_generation_failure_is_502(wired, query_processor):
    query_processor.llm_service.generate = AsyncMock(side_effect=LLMError("provider down"))

    async with _client(query_service.app) as client:
        response = await client.post("/query", json={"query_text": "Anything?"})

    assert response.status_code == 502


async def test_empty_query_rejected(wired):
    async with _client(query_service.app) as client:
        response = await client.post("/query", json={"query_text": ""})

    assert response.status_code == 422
