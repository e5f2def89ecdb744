from __future__ import annotations

"""Core data types for documents, chunks and retrieval."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RawDocument:
    """Uploaded file contents, read once during ingestion."""
    filename: str
    content: bytes


@dataclass(frozen=True)
class Chunk:
    """Block of consecutive sentences from one source document."""
    text: str
    source: str
    part: int
    context: str
    embedding: list[float] | None = None

    @property
    def metadata(self) -> dict[str, Any]:
        return {"source": self.source, "part": self.part, "context": self.context}


@dataclass(frozen=True)
class IndexRecord:
    """Unit persisted in the vector store."""
    id: str
    text: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievedItem:
    """Query hit returned by a vector store, most relevant first."""
    text: str
    metadata: dict[str, Any]
    id: str | None = None
    score: float | None = None


@dataclass(frozen=True)
class IngestResult:
    """Outcome of an ingestion call."""
    chunks: int
    context: str


@dataclass(frozen=True)
class RAGResponse:
    """Generated answer with the passages it was grounded on."""
    answer: str
    retrieved: list[RetrievedItem]
