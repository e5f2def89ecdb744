from __future__ import annotations

import os

import httpx
import pytest

from contextrag.app.dependencies import get_pipeline, reset_pipeline_cache
from contextrag.app.main import app
from contextrag.app.settings import settings
from contextrag.rag.errors import LLMError
from contextrag.rag.guardrails import NO_MATCH_ANSWER

pytestmark = pytest.mark.anyio

POLICY = b"Travel policy: employees must book flights 7 days in advance. Hotels need approval."


def get_client() -> httpx.AsyncClient:
    reset_pipeline_cache()
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def policy_files(name: str = "policy.txt", content: bytes = POLICY) -> list[tuple[str, tuple]]:
    return [("files", (name, content, "text/plain"))]


class FailingGenerator:
    async def generate(self, prompt: str) -> str:
        raise LLMError("generation backend unavailable")


async def test_health_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


async def test_upload_then_chat() -> None:
    async with get_client() as client:
        upload = await client.post(
            "/upload", files=policy_files(), headers={"context": "travel"}
        )
        assert upload.status_code == 200
        payload = upload.json()
        assert payload["ok"] is True
        assert payload["context"] == "travel"
        assert payload["chunks"] >= 1
        assert payload["msg"] == f"Indexed {payload['chunks']} chunks for context: travel"

        chat = await client.post(
            "/chat", json={"q": "How early must flights be booked?", "k": 3, "c": "travel"}
        )
    assert chat.status_code == 200
    body = chat.json()
    assert body["answer"].startswith("Based on the provided context:")
    assert body["retrieved"]
    assert all(item["metadata"]["context"] == "travel" for item in body["retrieved"])
    assert body["retrieved"][0]["metadata"]["source"] == "policy.txt"


async def test_index_and_query_aliases() -> None:
    async with get_client() as client:
        indexed = await client.post("/index", files=policy_files(), headers={"context": "alias"})
        assert indexed.status_code == 200
        queried = await client.post("/query", json={"q": "hotel approval", "c": "alias"})
    assert queried.status_code == 200
    assert queried.json()["retrieved"]


async def test_upload_generates_context_when_header_missing() -> None:
    async with get_client() as client:
        response = await client.post("/upload", files=policy_files())
    assert response.status_code == 200
    assert response.json()["context"].startswith("ctx-")


async def test_upload_removes_staged_files() -> None:
    async with get_client() as client:
        ok = await client.post("/upload", files=policy_files(), headers={"context": "tmp"})
        empty = await client.post(
            "/upload", files=policy_files("blank.txt", b"   "), headers={"context": "tmp"}
        )
    assert ok.status_code == 200
    assert empty.status_code == 400
    assert empty.json() == {"error": "No valid file content provided"}
    assert os.listdir(settings.data_dir) == []


async def test_upload_without_files_is_rejected() -> None:
    async with get_client() as client:
        response = await client.post("/upload", headers={"context": "none"})
    assert response.status_code == 400
    assert response.json() == {"error": "No files"}


async def test_chat_without_query_is_rejected() -> None:
    async with get_client() as client:
        missing = await client.post("/chat", json={"c": "travel"})
        blank = await client.post("/chat", json={"q": "   "})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing query"}
    assert blank.status_code == 400


async def test_chat_rejects_invalid_payload() -> None:
    async with get_client() as client:
        bad_k = await client.post("/chat", json={"q": "policy", "k": 0})
        not_json = await client.post(
            "/chat", content=b"q=policy", headers={"content-type": "text/plain"}
        )
    assert bad_k.status_code == 400
    assert "error" in bad_k.json()
    assert not_json.status_code == 400


async def test_chat_without_matches_returns_fixed_answer() -> None:
    async with get_client() as client:
        response = await client.post("/chat", json={"q": "Anything?", "c": "nothing-here"})
    assert response.status_code == 200
    assert response.json() == {"answer": NO_MATCH_ANSWER, "retrieved": []}


async def test_generation_failure_maps_to_bad_gateway(monkeypatch) -> None:
    async with get_client() as client:
        await client.post("/upload", files=policy_files(), headers={"context": "broken"})
        monkeypatch.setattr(get_pipeline(), "generator", FailingGenerator())
        response = await client.post("/chat", json={"q": "flights", "c": "broken"})
    assert response.status_code == 502
    assert response.json() == {"error": "generation backend unavailable"}


async def test_stats_endpoints() -> None:
    async with get_client() as client:
        await client.post("/upload", files=policy_files(), headers={"context": "stats"})
        stats = await client.get("/stats")
        store_health = await client.get("/stats/health")
        embedding = await client.get("/stats/embedding")
    assert stats.status_code == 200
    assert stats.json()["backend"] == "memory"
    assert stats.json()["document_count"] >= 1
    assert stats.json()["embedding_dimension"] == 256
    assert store_health.json() == {"backend": "memory", "ok": True, "detail": None}
    assert embedding.json()["ok"] is True


async def test_metrics_endpoint() -> None:
    async with get_client() as client:
        await client.get("/health")
        response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


async def test_malformed_json_body_has_plain_error() -> None:
    async with get_client() as client:
        response = await client.post(
            "/chat", content=b'{"q": "policy",', headers={"content-type": "application/json"}
        )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


async def test_openapi_documents_error_body() -> None:
    async with get_client() as client:
        response = await client.get("/openapi.json")
    schema = response.json()
    chat_responses = schema["paths"]["/chat"]["post"]["responses"]
    upload_responses = schema["paths"]["/upload"]["post"]["responses"]
    error_ref = "#/components/schemas/ErrorResponse"
    assert chat_responses["400"]["content"]["application/json"]["schema"]["$ref"] == error_ref
    assert chat_responses["502"]["content"]["application/json"]["schema"]["$ref"] == error_ref
    assert upload_responses["400"]["content"]["application/json"]["schema"]["$ref"] == error_ref
    assert schema["components"]["schemas"]["ErrorResponse"]["required"] == ["error"]
