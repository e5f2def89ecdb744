from __future__ import annotations

"""Document ingestion: decode, segment, chunk, embed and upsert."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Sequence

from contextrag.loaders.chunking import chunk_text_tokens, semantic_chunks, split_sentences
from contextrag.loaders.documents import decode_document
from contextrag.rag.embeddings import EmbeddingClient
from contextrag.rag.errors import ValidationError
from contextrag.rag.types import Chunk, IndexRecord, IngestResult, RawDocument
from contextrag.vectorstore.base import VectorStore, call_store

logger = logging.getLogger(__name__)

CHUNK_STRATEGIES = {"semantic", "tokens"}


def generate_context_id() -> str:
    """Return a short random context identifier."""
    return f"ctx-{uuid.uuid4().hex[:8]}"


@dataclass
class IngestionPipeline:
    embedder: EmbeddingClient
    store: VectorStore
    collection_name: str
    chunk_threshold: float = 0.75
    chunk_strategy: str = "semantic"
    chunk_tokens: int = 256
    chunk_token_overlap: int = 32
    encoding_name: str = "cl100k_base"

    def __post_init__(self) -> None:
        if not 0.0 <= self.chunk_threshold <= 1.0:
            raise ValueError(f"chunk_threshold must be within [0, 1], got {self.chunk_threshold}")
        if self.chunk_strategy not in CHUNK_STRATEGIES:
            raise ValueError(f"Unsupported chunk strategy: {self.chunk_strategy}")

    async def chunk_document(self, document: RawDocument, context: str) -> list[Chunk]:
        """Decode one document and split it into tagged chunks."""
        text = await asyncio.to_thread(decode_document, document)
        if self.chunk_strategy == "tokens":
            texts = chunk_text_tokens(
                text,
                max_tokens=self.chunk_tokens,
                overlap=self.chunk_token_overlap,
                encoding_name=self.encoding_name,
            )
        else:
            texts = await semantic_chunks(
                split_sentences(text), self.embedder, self.chunk_threshold
            )
        logger.info(
            "ingest_chunked",
            extra={"source": document.filename, "chunks": len(texts), "context": context},
        )
        return [
            Chunk(text=chunk, source=document.filename, part=part, context=context)
            for part, chunk in enumerate(texts)
        ]

    async def ingest(
        self,
        documents: Sequence[RawDocument],
        context: str | None = None,
    ) -> IngestResult:
        """Index every document under one context in a single batched write."""
        if not documents:
            raise ValidationError("No files")
        resolved_context = (context or "").strip() or generate_context_id()

        chunks: list[Chunk] = []
        for document in documents:
            chunks.extend(await self.chunk_document(document, resolved_context))
        if not chunks:
            raise ValidationError("No valid file content provided")

        embeddings = await self.embedder.embed([chunk.text for chunk in chunks])
        chunks = [replace(chunk, embedding=vector) for chunk, vector in zip(chunks, embeddings)]

        nonce = uuid.uuid4().hex[:12]
        records = [
            IndexRecord(
                id=f"{resolved_context}-{nonce}-{idx}",
                text=chunk.text,
                embedding=chunk.embedding or [],
                metadata=chunk.metadata,
            )
            for idx, chunk in enumerate(chunks)
        ]

        collection = await call_store(
            "get_or_create_collection", self.store.get_or_create_collection, self.collection_name
        )
        await call_store("upsert", collection.upsert, records)
        logger.info(
            "ingest_complete",
            extra={
                "documents": len(documents),
                "chunks": len(records),
                "context": resolved_context,
                "collection": self.collection_name,
            },
        )
        return IngestResult(chunks=len(records), context=resolved_context)
