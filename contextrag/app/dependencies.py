from __future__ import annotations

from functools import lru_cache

from contextrag.app.settings import settings
from contextrag.rag.embeddings import (
    EmbeddingClient,
    EmbeddingConfigError,
    EmbeddingConfigReport,
    EmbeddingProvider,
    GeminiEmbedder,
    HashEmbedder,
    HuggingFaceEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
    resolve_huggingface_dimension,
)
from contextrag.rag.ingestion import IngestionPipeline
from contextrag.rag.llm import Generator, build_generator
from contextrag.rag.pipeline import RAGPipeline
from contextrag.vectorstore.base import VectorStore, VectorStoreConfigError

# Each factory is cached for the process lifetime; the event loop runs them on
# one thread, so every object is built at most once until reset_pipeline_cache().


@lru_cache
def get_embedding_client() -> EmbeddingClient:
    return EmbeddingClient(provider=build_embedder(), verbose=settings.embedding_verbose)


@lru_cache
def get_vectorstore() -> VectorStore:
    return build_vectorstore(get_embedding_client().dimension)


@lru_cache
def get_generator() -> Generator:
    return build_generator(
        settings.llm_provider,
        model=settings.llm_model_name,
        api_key_openai=settings.openai_api_key,
        api_key_gemini=settings.gemini_api_key,
        openai_base_url=settings.openai_base_url,
        ollama_base_url=settings.ollama_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )


@lru_cache
def get_ingestion_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        embedder=get_embedding_client(),
        store=get_vectorstore(),
        collection_name=settings.collection_name,
        chunk_threshold=settings.chunk_threshold,
        chunk_strategy=settings.chunk_strategy.lower().strip(),
        chunk_tokens=settings.chunk_tokens,
        chunk_token_overlap=settings.chunk_token_overlap,
        encoding_name=settings.tokenizer_encoding,
    )


@lru_cache
def get_pipeline() -> RAGPipeline:
    return RAGPipeline(
        embedder=get_embedding_client(),
        store=get_vectorstore(),
        generator=get_generator(),
        collection_name=settings.collection_name,
        default_top_k=settings.default_top_k,
    )


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()
    get_ingestion_pipeline.cache_clear()
    get_generator.cache_clear()
    get_vectorstore.cache_clear()
    get_embedding_client.cache_clear()


def get_embedding_config_report() -> EmbeddingConfigReport:
    return build_embedding_config_report(
        settings.embedding_provider, settings.embedding_model, settings.embedding_dimension
    )


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider == "huggingface":
        dimension = settings.embedding_dimension
        if dimension <= 0:
            dimension = resolve_huggingface_dimension(settings.embed_model_name) or 0
        return HuggingFaceEmbedder(
            api_key=settings.hf_api_key or "",
            model=settings.embed_model_name,
            dimension=dimension,
            base_url=settings.hf_inference_url,
            timeout=settings.embedding_timeout,
        )
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.embed_model_name,
            dimension=settings.embedding_dimension,
        )
    if provider in {"gemini", "google"}:
        if settings.embedding_dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be set for Gemini embeddings")
        return GeminiEmbedder(
            api_key=settings.gemini_api_key or "",
            model=settings.embed_model_name,
            dimension=settings.embedding_dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_vectorstore(dimension: int) -> VectorStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "memory":
        from contextrag.vectorstore.inmemory import InMemoryVectorStore

        return InMemoryVectorStore()
    if backend == "chroma":
        from contextrag.vectorstore.chroma import ChromaVectorStore

        return ChromaVectorStore(
            host=settings.chroma_host,
            port=settings.chroma_port,
            persist_directory=settings.chroma_persist_dir,
        )
    if backend == "milvus":
        from contextrag.vectorstore.milvus import MilvusConfig, MilvusVectorStore

        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            metric_type=settings.milvus_metric_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
        )
        return MilvusVectorStore(config=config, dimension=dimension)
    raise VectorStoreConfigError(f"Unsupported vector store backend: {backend}")
