from __future__ import annotations

"""Collection-oriented vector store contract shared by all backends."""

import asyncio
import logging
from typing import Any, Callable, Protocol, Sequence, TypeVar

from contextrag.rag.errors import StoreFailure
from contextrag.rag.types import IndexRecord, RetrievedItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStoreConfigError(RuntimeError):
    """Raised when a vector store backend is misconfigured or unavailable."""
    pass


class VectorCollection(Protocol):
    """Named set of index records."""
    name: str

    def upsert(self, records: Sequence[IndexRecord]) -> int:
        """Insert or replace records by id in one batched write."""
        raise NotImplementedError

    def query(
        self,
        embedding: Sequence[float],
        n_results: int,
        context: str | None = None,
    ) -> list[RetrievedItem]:
        """Return the nearest records, optionally restricted to one context."""
        raise NotImplementedError

    def count(self) -> int:
        """Return the number of stored records."""
        raise NotImplementedError


class VectorStore(Protocol):
    """Backend that hands out collections by name."""
    backend: str

    def get_or_create_collection(self, name: str) -> VectorCollection:
        """Return the named collection, creating it when missing. Idempotent."""
        raise NotImplementedError

    def delete_collection(self, name: str) -> None:
        """Drop the named collection if it exists."""
        raise NotImplementedError

    def health(self) -> dict[str, Any]:
        """Return health information for the backend."""
        raise NotImplementedError


async def call_store(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store call in a worker thread, normalizing failures."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except StoreFailure:
        raise
    except Exception as exc:
        logger.error(
            "vectorstore_call_failed",
            extra={"operation": operation, "detail": type(exc).__name__},
        )
        raise StoreFailure(f"Vector store {operation} failed: {exc}") from exc
