from __future__ import annotations

"""ChromaDB-backed vector store using pre-computed embeddings."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Sequence

os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
from chromadb.config import Settings as ChromaSettings

from contextrag.rag.types import IndexRecord, RetrievedItem

logger = logging.getLogger(__name__)


class _PrecomputedEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Placeholder that keeps Chroma from loading its default embedding model.

    Every write and query passes embeddings explicitly, so this is never called.
    """

    def __init__(self) -> None:
        pass

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("contextrag passes pre-computed embeddings to Chroma")

    @staticmethod
    def name() -> str:
        return "contextrag_precomputed"

    def get_config(self) -> dict[str, Any]:
        return {}

    @staticmethod
    def build_from_config(config: dict[str, Any]) -> _PrecomputedEmbeddingFunction:
        return _PrecomputedEmbeddingFunction()


@dataclass
class ChromaCollection:
    """Adapter over a ``chromadb`` collection."""
    name: str
    collection: Any = field(repr=False)

    def upsert(self, records: Sequence[IndexRecord]) -> int:
        batch = list(records)
        if not batch:
            return 0
        self.collection.upsert(
            ids=[record.id for record in batch],
            documents=[record.text for record in batch],
            embeddings=[record.embedding for record in batch],
            metadatas=[record.metadata for record in batch],
        )
        return len(batch)

    def query(
        self,
        embedding: Sequence[float],
        n_results: int,
        context: str | None = None,
    ) -> list[RetrievedItem]:
        if n_results <= 0:
            return []
        kwargs: dict[str, Any] = {
            "query_embeddings": [list(embedding)],
            "n_results": n_results,
            "include": ["documents", "metadatas", "distances"],
        }
        if context is not None:
            kwargs["where"] = {"context": context}
        result = self.collection.query(**kwargs)

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0] or [None] * len(documents)
        distances = (result.get("distances") or [[]])[0] or [None] * len(documents)
        items: list[RetrievedItem] = []
        for idx, text in enumerate(documents):
            distance = distances[idx]
            items.append(
                RetrievedItem(
                    text=text or "",
                    metadata=dict(metadatas[idx] or {}),
                    id=ids[idx] if idx < len(ids) else None,
                    score=None if distance is None else 1.0 - float(distance),
                )
            )
        return items

    def count(self) -> int:
        return int(self.collection.count())


@dataclass
class ChromaVectorStore:
    """Chroma server (HTTP) or local persistent client."""
    host: str = "localhost"
    port: int = 8000
    persist_directory: str | None = None
    backend: str = "chroma"
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Create the Chroma client with telemetry disabled."""
        settings = ChromaSettings(anonymized_telemetry=False)
        if self.persist_directory:
            self.client = chromadb.PersistentClient(path=self.persist_directory, settings=settings)
        else:
            self.client = chromadb.HttpClient(host=self.host, port=self.port, settings=settings)

    def get_or_create_collection(self, name: str) -> ChromaCollection:
        """Resolve a cosine-space collection by name; Chroma dedupes concurrent creates."""
        try:
            collection = self.client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_PrecomputedEmbeddingFunction(),
            )
        except ValueError:
            # Collections persisted with a different embedding function reject ours.
            collection = self.client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        return ChromaCollection(name=name, collection=collection)

    def delete_collection(self, name: str) -> None:
        try:
            self.client.delete_collection(name)
        except Exception as exc:
            if "does not exist" not in str(exc).lower():
                raise
            logger.info("chroma_collection_missing", extra={"collection": name})

    def health(self) -> dict[str, Any]:
        """Return heartbeat information for the Chroma client."""
        try:
            self.client.heartbeat()
        except Exception as exc:
            return {"backend": self.backend, "ok": False, "detail": str(exc)}
        return {"backend": self.backend, "ok": True}
