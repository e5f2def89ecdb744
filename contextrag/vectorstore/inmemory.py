from __future__ import annotations

"""In-memory vector store for local testing and small datasets."""

import threading
from dataclasses import dataclass, field
from typing import Any, Sequence

from contextrag.loaders.chunking import cosine_similarity
from contextrag.rag.types import IndexRecord, RetrievedItem


@dataclass
class InMemoryCollection:
    """Simple in-memory collection with cosine similarity search."""
    name: str
    records: dict[str, IndexRecord] = field(default_factory=dict)
    dimension: int | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def upsert(self, records: Sequence[IndexRecord]) -> int:
        """Store records by id; the whole batch is rejected on a dimension mismatch."""
        batch = list(records)
        if not batch:
            return 0
        with self._lock:
            dimension = self.dimension or len(batch[0].embedding)
            for record in batch:
                if len(record.embedding) != dimension:
                    raise ValueError(
                        f"Embedding dimension mismatch for {record.id}: "
                        f"expected {dimension}, got {len(record.embedding)}"
                    )
            self.dimension = dimension
            for record in batch:
                self.records[record.id] = record
        return len(batch)

    def query(
        self,
        embedding: Sequence[float],
        n_results: int,
        context: str | None = None,
    ) -> list[RetrievedItem]:
        """Rank stored records by cosine similarity to ``embedding``."""
        if n_results <= 0:
            return []
        with self._lock:
            candidates = list(self.records.values())
        if context is not None:
            candidates = [
                record for record in candidates if record.metadata.get("context") == context
            ]
        scored: list[tuple[float, IndexRecord]] = []
        for record in candidates:
            similarity = cosine_similarity(embedding, record.embedding)
            scored.append((similarity if similarity is not None else 0.0, record))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            RetrievedItem(
                text=record.text,
                metadata=dict(record.metadata),
                id=record.id,
                score=score,
            )
            for score, record in scored[:n_results]
        ]

    def count(self) -> int:
        with self._lock:
            return len(self.records)


@dataclass
class InMemoryVectorStore:
    """Process-local collections keyed by name."""
    collections: dict[str, InMemoryCollection] = field(default_factory=dict)
    backend: str = "memory"
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get_or_create_collection(self, name: str) -> InMemoryCollection:
        with self._lock:
            collection = self.collections.get(name)
            if collection is None:
                collection = InMemoryCollection(name=name)
                self.collections[name] = collection
            return collection

    def delete_collection(self, name: str) -> None:
        with self._lock:
            self.collections.pop(name, None)

    def health(self) -> dict[str, Any]:
        """Return health information for the vector store."""
        return {"backend": self.backend, "ok": True}
