from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    q: str | None = None
    k: int | None = Field(default=None, ge=1, le=100)
    c: str | None = None


class RetrievedChunk(BaseModel):
    text: str
    metadata: dict[str, Any]


class ChatResponse(BaseModel):
    answer: str
    retrieved: list[RetrievedChunk]


class IngestResponse(BaseModel):
    ok: bool = True
    msg: str
    chunks: int
    context: str


class ErrorResponse(BaseModel):
    error: str


class StatsResponse(BaseModel):
    backend: str
    collection: str
    document_count: int
    embedding_dimension: int


class StatsHealthResponse(BaseModel):
    backend: str
    ok: bool
    detail: str | None = None


class EmbeddingHealthResponse(BaseModel):
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None
