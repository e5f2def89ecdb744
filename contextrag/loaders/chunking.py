from __future__ import annotations

"""Sentence segmentation, similarity-driven chunking and token windows."""

import math
import re
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from contextrag.rag.embeddings import EmbeddingClient

_WHITESPACE_RE = re.compile(r"\s+")
# A run of text closed by terminators, or a trailing run with none.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")
# Float rounding can leave parallel vectors a few ulps short of +/-1.
_UNIT_TOLERANCE = 1e-9


def normalize_text(text: str) -> str:
    """Normalize whitespace and line endings in text."""
    return _WHITESPACE_RE.sub(" ", text.replace("\r\n", "\n")).strip()


def split_sentences(text: str) -> list[str]:
    """Split text into trimmed, non-empty sentences on ``.``, ``!`` and ``?``."""
    pieces = (match.group(0).strip() for match in _SENTENCE_RE.finditer(text))
    return [piece for piece in pieces if piece]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float | None:
    """Compute cosine similarity, or ``None`` when either vector has no magnitude."""
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} vs {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return None
    similarity = dot / (norm_a * norm_b)
    if abs(similarity) >= 1.0 - _UNIT_TOLERANCE:
        return math.copysign(1.0, similarity)
    return similarity


async def semantic_chunks(
    sentences: Sequence[str],
    embedder: EmbeddingClient,
    threshold: float,
) -> list[str]:
    """Merge consecutive sentences while they stay similar to the run's first sentence.

    Each run is anchored on the embedding of the sentence that opened it; the
    anchor is not moved as sentences are appended. A sentence whose similarity
    to the anchor falls below ``threshold`` (or cannot be computed) starts a
    new chunk.
    """
    if not sentences:
        return []
    vectors = await embedder.embed(sentences)

    chunks: list[str] = []
    current = [sentences[0]]
    anchor = vectors[0]
    for sentence, vector in zip(sentences[1:], vectors[1:]):
        similarity = cosine_similarity(anchor, vector)
        if similarity is not None and similarity >= threshold:
            current.append(sentence)
            continue
        chunks.append(" ".join(current))
        current = [sentence]
        anchor = vector
    chunks.append(" ".join(current))
    return chunks


def chunk_text_tokens(
    text: str,
    max_tokens: int,
    overlap: int,
    encoding_name: str = "cl100k_base",
) -> list[str]:
    """Split text into overlapping token-based chunks."""
    cleaned = normalize_text(text)
    if not cleaned:
        return []
    if max_tokens <= 0:
        return [cleaned]
    if overlap >= max_tokens:
        overlap = max(0, max_tokens // 4)
    import tiktoken

    try:
        encoding = tiktoken.get_encoding(encoding_name)
    except ValueError:
        encoding = tiktoken.get_encoding("cl100k_base")

    tokens = encoding.encode(cleaned)
    if not tokens:
        return []
    chunks: list[str] = []
    start = 0
    length = len(tokens)
    while start < length:
        end = min(length, start + max_tokens)
        chunk = encoding.decode(tokens[start:end]).strip()
        if chunk:
            chunks.append(chunk)
        if end >= length:
            break
        start = max(0, end - overlap)
    return chunks
