from __future__ import annotations

"""Milvus-backed vector store for chunk records."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from contextrag.rag.types import IndexRecord, RetrievedItem
from contextrag.vectorstore.base import VectorStoreConfigError

logger = logging.getLogger(__name__)

_OUTPUT_FIELDS = ["id", "text", "source", "part", "context"]


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    consistency: str = "Strong"
    index_type: str = "IVF_FLAT"
    metric_type: str = "COSINE"
    nlist: int = 1024
    nprobe: int = 10
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    hnsw_ef: int = 64
    max_content_length: int = 65535


@dataclass
class MilvusCollection:
    """Adapter over a pymilvus ``Collection`` with flat chunk fields."""
    name: str
    collection: Any = field(repr=False)
    config: MilvusConfig = field(repr=False)

    def upsert(self, records: Sequence[IndexRecord]) -> int:
        """Upsert all records in one request and flush."""
        rows: list[dict[str, Any]] = []
        for record in records:
            rows.append(
                {
                    "id": record.id,
                    "text": record.text[: self.config.max_content_length],
                    "source": str(record.metadata.get("source", "")),
                    "part": int(record.metadata.get("part", 0)),
                    "context": str(record.metadata.get("context", "")),
                    "embedding": list(record.embedding),
                }
            )
        if not rows:
            return 0
        self.collection.upsert(rows)
        self.collection.flush()
        return len(rows)

    def query(
        self,
        embedding: Sequence[float],
        n_results: int,
        context: str | None = None,
    ) -> list[RetrievedItem]:
        """Dense search with an optional context equality expression."""
        if n_results <= 0:
            return []
        self.collection.load()
        if self.config.index_type.upper() == "HNSW":
            params = {"ef": max(self.config.hnsw_ef, n_results)}
        else:
            params = {"nprobe": self.config.nprobe}
        results = self.collection.search(
            data=[list(embedding)],
            anns_field="embedding",
            param={"metric_type": self.config.metric_type, "params": params},
            limit=n_results,
            expr=_context_expr(context),
            output_fields=_OUTPUT_FIELDS,
        )
        items: list[RetrievedItem] = []
        for hit in results[0]:
            entity = hit.entity
            items.append(
                RetrievedItem(
                    text=entity.get("text") or "",
                    metadata={
                        "source": entity.get("source"),
                        "part": entity.get("part"),
                        "context": entity.get("context"),
                    },
                    id=entity.get("id"),
                    score=float(hit.score),
                )
            )
        return items

    def count(self) -> int:
        return int(self.collection.num_entities)


def _context_expr(context: str | None) -> str | None:
    """Build a Milvus boolean expression for the context filter."""
    if context is None:
        return None
    return f"context == {json.dumps(context)}"


@dataclass
class MilvusVectorStore:
    """Milvus connection handing out one collection per name."""
    config: MilvusConfig
    dimension: int
    backend: str = "milvus"

    def __post_init__(self) -> None:
        """Connect to Milvus."""
        try:
            from pymilvus import connections
        except ImportError as exc:
            raise VectorStoreConfigError("pymilvus is required for MilvusVectorStore") from exc
        if self.dimension <= 0:
            raise VectorStoreConfigError(
                "EMBEDDING_DIMENSION must be set before initializing MilvusVectorStore"
            )
        connections.connect(alias="default", uri=self.config.uri, token=self.config.token)

    def get_or_create_collection(self, name: str) -> MilvusCollection:
        """Open the collection, creating schema and index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(name):
            collection = Collection(name, consistency_level=self.config.consistency)
            existing_dim = _embedding_dim(collection)
            if existing_dim is not None and existing_dim != self.dimension:
                raise VectorStoreConfigError(
                    "Milvus collection embedding dimension mismatch: "
                    f"{existing_dim} (collection) vs {self.dimension} (embedder). "
                    "Update EMBEDDING_DIMENSION or use a new RAG_COLLECTION."
                )
            return MilvusCollection(name=name, collection=collection, config=self.config)

        fields = [
            FieldSchema(name="id", dtype=DataType.VARCHAR, is_primary=True, max_length=256),
            FieldSchema(
                name="text",
                dtype=DataType.VARCHAR,
                max_length=self.config.max_content_length,
            ),
            FieldSchema(name="source", dtype=DataType.VARCHAR, max_length=1024),
            FieldSchema(name="part", dtype=DataType.INT64),
            FieldSchema(name="context", dtype=DataType.VARCHAR, max_length=256),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.dimension),
        ]
        schema = CollectionSchema(fields=fields, description="Semantic chunks")
        # Creating an existing collection with the same schema returns it.
        collection = Collection(name, schema, consistency_level=self.config.consistency)
        if not collection.has_index():
            collection.create_index(field_name="embedding", index_params=self._index_params())
        logger.info("milvus_collection_ready", extra={"collection": name})
        return MilvusCollection(name=name, collection=collection, config=self.config)

    def _index_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {
                "index_type": "HNSW",
                "metric_type": self.config.metric_type,
                "params": {
                    "M": self.config.hnsw_m,
                    "efConstruction": self.config.hnsw_ef_construction,
                },
            }
        return {
            "index_type": self.config.index_type,
            "metric_type": self.config.metric_type,
            "params": {"nlist": self.config.nlist},
        }

    def delete_collection(self, name: str) -> None:
        from pymilvus import utility

        if utility.has_collection(name):
            utility.drop_collection(name)

    def health(self) -> dict[str, Any]:
        """Return server version or the connection error."""
        from pymilvus import utility

        try:
            version = utility.get_server_version()
        except Exception as exc:
            return {"backend": self.backend, "ok": False, "detail": str(exc)}
        return {"backend": self.backend, "ok": True, "detail": str(version)}


def _embedding_dim(collection: Any) -> int | None:
    """Read embedding dimension from an existing collection schema."""
    for schema_field in collection.schema.fields:
        if schema_field.name != "embedding":
            continue
        params = getattr(schema_field, "params", None) or {}
        dim = params.get("dim", getattr(schema_field, "dim", None))
        return int(dim) if dim is not None else None
    return None
