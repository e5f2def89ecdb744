from __future__ import annotations

import os
from dataclasses import dataclass

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional in minimal setups
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "huggingface")
    embed_model_name: str = os.getenv(
        "EMBED_MODEL_NAME", "sentence-transformers/all-MiniLM-L6-v2"
    )
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "384"))
    embedding_verbose: bool = _env_bool("EMBEDDING_VERBOSE", "false")
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "60"))
    hf_api_key: str | None = os.getenv("HF_API_KEY")
    hf_inference_url: str = os.getenv(
        "HF_INFERENCE_URL", "https://router.huggingface.co/hf-inference/models"
    )
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "gemini")
    llm_model_name: str = os.getenv("LLM_MODEL_NAME", "gemini-2.5-flash")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.2"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    chunk_threshold: float = float(
        os.getenv("CHUNK_THRESHOLD", os.getenv("CHUNK_LENGTH", "0.75"))
    )
    chunk_strategy: str = os.getenv("RAG_CHUNK_STRATEGY", "semantic")
    chunk_tokens: int = int(os.getenv("RAG_CHUNK_TOKENS", "256"))
    chunk_token_overlap: int = int(os.getenv("RAG_CHUNK_TOKEN_OVERLAP", "32"))
    tokenizer_encoding: str = os.getenv("RAG_TOKENIZER_ENCODING", "cl100k_base")
    default_top_k: int = int(os.getenv("RAG_DEFAULT_TOP_K", "5"))
    data_dir: str = os.getenv("RAG_DATA_DIR", "./data")
    file_max_bytes: int = int(os.getenv("RAG_FILE_MAX_BYTES", "10485760"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "chroma")
    collection_name: str = os.getenv("RAG_COLLECTION", "rag_ingested")
    chroma_host: str = os.getenv("CHROMA_DB_HOST", "localhost")
    chroma_port: int = int(os.getenv("CHROMA_DB_PORT", "8000"))
    chroma_persist_dir: str | None = os.getenv("CHROMA_PERSIST_DIR")
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_consistency: str = os.getenv("MILVUS_CONSISTENCY", "Strong")
    milvus_index_type: str = os.getenv("MILVUS_INDEX_TYPE", "IVF_FLAT")
    milvus_metric_type: str = os.getenv("MILVUS_METRIC_TYPE", "COSINE")
    milvus_nlist: int = int(os.getenv("MILVUS_NLIST", "1024"))
    milvus_nprobe: int = int(os.getenv("MILVUS_NPROBE", "10"))
    metrics_enabled: bool = _env_bool("RAG_METRICS_ENABLED", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "5000"))

    @property
    def embedding_model(self) -> str | None:
        if self.embedding_provider.lower().strip() == "hash":
            return None
        return self.embed_model_name


settings = Settings()
