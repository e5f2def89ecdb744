from __future__ import annotations

import logging
from dataclasses import dataclass

from contextrag.rag.embeddings import EmbeddingClient
from contextrag.rag.errors import ValidationError
from contextrag.rag.guardrails import NO_MATCH_ANSWER, require_context
from contextrag.rag.llm import Generator
from contextrag.rag.prompts import build_prompt
from contextrag.rag.types import RAGResponse, RetrievedItem
from contextrag.vectorstore.base import VectorStore, call_store

logger = logging.getLogger(__name__)


@dataclass
class RAGPipeline:
    embedder: EmbeddingClient
    store: VectorStore
    generator: Generator
    collection_name: str
    default_top_k: int = 5

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        context: str | None = None,
    ) -> list[RetrievedItem]:
        k = self.default_top_k if top_k is None else top_k
        if k < 1:
            raise ValidationError("k must be at least 1")
        [query_embedding] = await self.embedder.embed([query])
        collection = await call_store(
            "get_or_create_collection", self.store.get_or_create_collection, self.collection_name
        )
        results = await call_store(
            "query", collection.query, query_embedding, n_results=k, context=context
        )
        logger.info(
            "retrieval_complete",
            extra={
                "results": len(results),
                "query_length": len(query),
                "top_k": k,
                "context": context,
            },
        )
        return results

    async def answer(
        self,
        query: str,
        top_k: int | None = None,
        context: str | None = None,
    ) -> RAGResponse:
        if not query or not query.strip():
            raise ValidationError("Missing query")
        retrieved = await self.retrieve(query, top_k=top_k, context=context or None)
        guardrail = require_context(retrieved)
        if not guardrail.allowed:
            return RAGResponse(answer=NO_MATCH_ANSWER, retrieved=[])
        prompt = build_prompt(query, retrieved)
        answer = await self.generator.generate(prompt)
        return RAGResponse(answer=answer, retrieved=retrieved)
