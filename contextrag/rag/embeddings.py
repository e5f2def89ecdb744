from __future__ import annotations

"""Embedding providers, the batching client and configuration validation."""

import asyncio
import hashlib
import io
import logging
import math
import re
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol, Sequence

import httpx

from contextrag.rag.errors import EmbeddingFailure

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")

DEFAULT_HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models"


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return one embedding vector per input text, in input order."""
        raise NotImplementedError


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingFailure(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingFailure("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingFailure("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


class _OutputSilencer:
    """Reference-counted stdout/stderr redirection.

    The lock only guards swapping the streams, so overlapping callers in
    different worker threads never restore a stream another caller installed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._depth = 0
        self._saved: tuple[Any, Any] | None = None
        self._sink: io.StringIO | None = None

    def acquire(self) -> None:
        with self._lock:
            if self._depth == 0:
                self._saved = (sys.stdout, sys.stderr)
                self._sink = io.StringIO()
                sys.stdout = self._sink
                sys.stderr = self._sink
            self._depth += 1

    def release(self) -> None:
        with self._lock:
            self._depth -= 1
            if self._depth > 0 or self._saved is None:
                return
            sys.stdout, sys.stderr = self._saved
            discarded = self._sink.getvalue() if self._sink is not None else ""
            self._saved = None
            self._sink = None
        if discarded:
            logger.debug("embedding_output_suppressed", extra={"chars": len(discarded)})


_silencer = _OutputSilencer()


@contextmanager
def suppress_output() -> Iterator[None]:
    """Silence console output for the duration of the block."""
    _silencer.acquire()
    try:
        yield
    finally:
        _silencer.release()


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = digest[0] % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


@dataclass
class HuggingFaceEmbedder:
    """Embedding provider using the Hugging Face feature-extraction API."""
    api_key: str
    model: str
    dimension: int
    base_url: str = DEFAULT_HF_INFERENCE_URL
    timeout: float = 60.0
    transport: httpx.BaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate Hugging Face configuration."""
        if not self.api_key:
            raise EmbeddingConfigError("HF_API_KEY is required for HuggingFaceEmbedder")
        if not self.model:
            raise EmbeddingConfigError("EMBED_MODEL_NAME is required for HuggingFaceEmbedder")

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts in one feature-extraction request."""
        url = f"{self.base_url.rstrip('/')}/{self.model}/pipeline/feature-extraction"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(url, json={"inputs": texts}, headers=headers)
            if response.status_code >= 400:
                raise EmbeddingFailure(
                    f"Hugging Face embedding request failed ({response.status_code}): "
                    f"{response.text[:200]}"
                )
            data = response.json()
        return _pooled_vectors(data, expected=len(texts))


def _pooled_vectors(data: Any, expected: int) -> list[list[float]]:
    """Normalize feature-extraction output to one vector per input."""
    if not isinstance(data, list) or not data:
        raise EmbeddingFailure("Hugging Face response missing embeddings")
    # A single input may come back as a bare vector.
    if expected == 1 and isinstance(data[0], (int, float)):
        return [list(data)]
    vectors: list[list[float]] = []
    for item in data:
        if not isinstance(item, list) or not item:
            raise EmbeddingFailure("Hugging Face response has an invalid embedding")
        if isinstance(item[0], list):
            # token-level output: mean pool over tokens
            width = len(item[0])
            vectors.append([sum(token[i] for token in item) / len(item) for i in range(width)])
        else:
            vectors.append(list(item))
    return vectors


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


def resolve_huggingface_dimension(model: str) -> int | None:
    """Return expected dimension for well-known sentence-transformers models."""
    mapping = {
        "sentence-transformers/all-MiniLM-L6-v2": 384,
        "sentence-transformers/all-MiniLM-L12-v2": 384,
        "sentence-transformers/all-mpnet-base-v2": 768,
        "BAAI/bge-small-en-v1.5": 384,
        "BAAI/bge-base-en-v1.5": 768,
    }
    return mapping.get(model)


@dataclass
class OpenAIEmbedder:
    """Embedding provider using OpenAI embeddings API."""
    api_key: str
    model: str
    dimension: int
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and create a client."""
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        if not self.model:
            raise EmbeddingConfigError("EMBED_MODEL_NAME is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingConfigError("openai package is required for OpenAIEmbedder") from exc
        self.client = OpenAI(api_key=self.api_key)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch using the OpenAI embeddings API."""
        response = self.client.embeddings.create(model=self.model, input=texts)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


@dataclass
class GeminiEmbedder:
    """Embedding provider using Gemini embeddings API."""
    api_key: str
    model: str
    dimension: int
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate Gemini configuration and create a client."""
        if not self.api_key:
            raise EmbeddingConfigError("GEMINI_API_KEY is required for GeminiEmbedder")
        if not self.model:
            raise EmbeddingConfigError("EMBED_MODEL_NAME is required for GeminiEmbedder")
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise EmbeddingConfigError(
                "google-generativeai package is required for GeminiEmbedder"
            ) from exc
        genai.configure(api_key=self.api_key)
        self.client = genai

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch using the Gemini embeddings API."""
        result = self.client.embed_content(model=self.model, content=texts)
        embedding = None
        if isinstance(result, dict):
            embedding = result.get("embedding")
        if embedding is None:
            embedding = getattr(result, "embedding", None)
        if embedding is None:
            raise EmbeddingFailure("Gemini embedding response missing embedding vectors")
        if embedding and isinstance(embedding[0], (int, float)):
            return [list(embedding)]
        return [list(vector) for vector in embedding]


@dataclass
class EmbeddingClient:
    """Batches text through a provider without blocking the event loop."""
    provider: EmbeddingProvider
    verbose: bool = False

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed all texts in one provider call, preserving input order."""
        batch = list(texts)
        if not batch:
            return []
        try:
            raw = await asyncio.to_thread(self._call_provider, batch)
        except EmbeddingFailure:
            raise
        except Exception as exc:
            logger.error(
                "embedding_failed",
                extra={"provider": type(self.provider).__name__, "batch_size": len(batch)},
            )
            raise EmbeddingFailure(str(exc) or type(exc).__name__) from exc
        if len(raw) != len(batch):
            raise EmbeddingFailure(
                f"Embedding count mismatch: expected {len(batch)}, got {len(raw)}"
            )
        dimension = self.provider.dimension if self.provider.dimension > 0 else len(raw[0])
        vectors = [validate_vector(vector, dimension) for vector in raw]
        logger.debug(
            "embedding_complete",
            extra={"batch_size": len(batch), "dimension": dimension},
        )
        return vectors

    def _call_provider(self, batch: list[str]) -> list[list[float]]:
        if self.verbose:
            return self.provider.embed_batch(batch)
        with suppress_output():
            return self.provider.embed_batch(batch)


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Validation report for embedding configuration."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int
) -> EmbeddingConfigReport:
    """Build a validation report for embedding settings."""
    normalized = provider.lower().strip() or "hash"

    def report(
        ok: bool,
        status: str,
        expected: int | None,
        detail: str | None = None,
        action: str | None = None,
    ) -> EmbeddingConfigReport:
        return EmbeddingConfigReport(
            provider=normalized,
            model=None if normalized == "hash" else model,
            configured_dimension=dimension,
            expected_dimension=expected,
            ok=ok,
            status=status,
            detail=detail,
            action=action,
        )

    if normalized == "hash":
        if dimension <= 0:
            return report(
                False,
                "error",
                None,
                "EMBEDDING_DIMENSION must be greater than zero for hash embeddings.",
                "Set EMBEDDING_DIMENSION to a positive integer.",
            )
        return report(True, "ok", dimension)

    resolvers = {
        "openai": resolve_openai_dimension,
        "huggingface": resolve_huggingface_dimension,
        "gemini": lambda _model: None,
    }
    if normalized == "google":
        normalized = "gemini"
    resolver = resolvers.get(normalized)
    if resolver is None:
        return report(
            False,
            "error",
            None,
            "Unsupported embedding provider.",
            "Set EMBEDDING_PROVIDER to hash, huggingface, openai, or gemini.",
        )
    if not model:
        return report(
            False,
            "error",
            None,
            f"EMBED_MODEL_NAME is required for {normalized} embeddings.",
            "Set EMBED_MODEL_NAME in .env.",
        )
    expected = resolver(model)
    if dimension <= 0:
        if expected is not None:
            return report(True, "ok", expected, "Dimension inferred from the model.")
        return report(
            True,
            "warning",
            None,
            "Dimension will be inferred from the first embedding response.",
        )
    if expected is not None and dimension != expected:
        return report(
            False,
            "error",
            expected,
            f"EMBEDDING_DIMENSION does not match the {normalized} model dimension.",
            f"Set EMBEDDING_DIMENSION to {expected}.",
        )
    if expected is None:
        return report(
            True,
            "warning",
            None,
            "Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
        )
    return report(True, "ok", expected)
