from __future__ import annotations

"""Error taxonomy shared by the pipelines and the HTTP layer."""


class ValidationError(ValueError):
    """Raised when a request is missing required input (files, query text)."""
    pass


class UpstreamServiceError(RuntimeError):
    """Raised when an external collaborator (embeddings, store, LLM) fails."""
    pass


class EmbeddingFailure(UpstreamServiceError):
    """Raised when embeddings fail or are invalid."""
    pass


class StoreFailure(UpstreamServiceError):
    """Raised when the vector store rejects a read or write."""
    pass


class LLMError(UpstreamServiceError):
    """Raised when LLM requests fail or responses are invalid."""
    pass
