from __future__ import annotations

"""Vector store contract tests against the in-memory backend."""

import warnings
from concurrent.futures import ThreadPoolExecutor

import pytest

from contextrag.rag.errors import StoreFailure
from contextrag.rag.types import IndexRecord
from contextrag.vectorstore.base import call_store
from contextrag.vectorstore.inmemory import InMemoryVectorStore


def record(record_id: str, embedding: list[float], context: str, text: str = "") -> IndexRecord:
    return IndexRecord(
        id=record_id,
        text=text or record_id,
        embedding=embedding,
        metadata={"source": "notes.txt", "part": 0, "context": context},
    )


def test_get_or_create_collection_is_idempotent() -> None:
    store = InMemoryVectorStore()
    first = store.get_or_create_collection("docs")
    first.upsert([record("a", [1.0, 0.0], "ctx")])

    second = store.get_or_create_collection("docs")

    assert second is first
    assert second.count() == 1


def test_get_or_create_collection_under_concurrent_callers() -> None:
    store = InMemoryVectorStore()
    with ThreadPoolExecutor(max_workers=8) as pool:
        collections = list(pool.map(lambda _: store.get_or_create_collection("docs"), range(32)))

    assert all(collection is collections[0] for collection in collections)
    assert list(store.collections) == ["docs"]


def test_query_ranks_by_similarity_and_limits_results() -> None:
    collection = InMemoryVectorStore().get_or_create_collection("docs")
    collection.upsert(
        [
            record("near", [1.0, 0.1], "ctx"),
            record("far", [0.0, 1.0], "ctx"),
            record("mid", [0.7, 0.7], "ctx"),
        ]
    )

    results = collection.query([1.0, 0.0], n_results=2)

    assert [item.id for item in results] == ["near", "mid"]
    assert results[0].score >= results[1].score


def test_query_filters_by_context() -> None:
    collection = InMemoryVectorStore().get_or_create_collection("docs")
    collection.upsert(
        [
            record("a-1", [1.0, 0.0], "alpha"),
            record("b-1", [1.0, 0.0], "beta"),
            record("b-2", [0.9, 0.1], "beta"),
        ]
    )

    results = collection.query([1.0, 0.0], n_results=5, context="beta")

    assert {item.id for item in results} == {"b-1", "b-2"}
    assert all(item.metadata["context"] == "beta" for item in results)
    assert collection.query([1.0, 0.0], n_results=5, context="gamma") == []


def test_upsert_replaces_by_id() -> None:
    collection = InMemoryVectorStore().get_or_create_collection("docs")
    collection.upsert([record("a", [1.0, 0.0], "ctx", text="old")])
    collection.upsert([record("a", [1.0, 0.0], "ctx", text="new")])

    assert collection.count() == 1
    assert collection.query([1.0, 0.0], n_results=1)[0].text == "new"


def test_upsert_rejects_mixed_dimensions_atomically() -> None:
    collection = InMemoryVectorStore().get_or_create_collection("docs")

    with pytest.raises(ValueError):
        collection.upsert([record("a", [1.0, 0.0], "ctx"), record("b", [1.0], "ctx")])

    assert collection.count() == 0


def test_delete_collection_drops_records() -> None:
    store = InMemoryVectorStore()
    store.get_or_create_collection("docs").upsert([record("a", [1.0, 0.0], "ctx")])

    store.delete_collection("docs")
    store.delete_collection("missing")

    assert store.get_or_create_collection("docs").count() == 0


@pytest.mark.anyio
async def test_call_store_wraps_backend_errors() -> None:
    def broken() -> None:
        raise ConnectionError("connection refused")

    with pytest.raises(StoreFailure, match="upsert failed: connection refused"):
        await call_store("upsert", broken)


class FakeChromaCollection:
    def __init__(self) -> None:
        self.query_kwargs: dict = {}

    def query(self, **kwargs):
        self.query_kwargs = kwargs
        return {
            "ids": [["beta-1"]],
            "documents": [["Beta revenue fell."]],
            "metadatas": [[{"source": "b.txt", "part": 0, "context": "beta"}]],
            "distances": [[0.25]],
        }


def test_chroma_collection_passes_context_filter() -> None:
    pytest.importorskip("chromadb")
    from contextrag.vectorstore.chroma import ChromaCollection

    fake = FakeChromaCollection()
    results = ChromaCollection(name="docs", collection=fake).query([1.0, 0.0], 3, context="beta")

    assert fake.query_kwargs["where"] == {"context": "beta"}
    assert fake.query_kwargs["n_results"] == 3
    assert results[0].id == "beta-1"
    assert results[0].score == pytest.approx(0.75)


def test_precomputed_embedding_function_is_config_serializable() -> None:
    pytest.importorskip("chromadb")
    from contextrag.vectorstore.chroma import _PrecomputedEmbeddingFunction

    assert "__init__" in vars(_PrecomputedEmbeddingFunction)
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        function = _PrecomputedEmbeddingFunction()
        config = function.get_config()

    assert config == {}
    assert _PrecomputedEmbeddingFunction.name() == "contextrag_precomputed"
    rebuilt = _PrecomputedEmbeddingFunction.build_from_config(config)
    assert isinstance(rebuilt, _PrecomputedEmbeddingFunction)
    with pytest.raises(NotImplementedError):
        rebuilt(["text"])
