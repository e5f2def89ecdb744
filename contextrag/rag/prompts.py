from __future__ import annotations

"""Prompt assembly for grounded answers."""

from typing import Sequence

from contextrag.rag.types import RetrievedItem

PROMPT_HEADER = "Use the following context to answer the question."
CONTEXT_SEPARATOR = "\n\n---\n\n"


def format_source(metadata: dict[str, object]) -> str:
    """Render ``source#part``, omitting the part when it is unknown."""
    source = metadata.get("source") or "unknown"
    part = metadata.get("part")
    if part is None or part == "":
        return str(source)
    return f"{source}#{part}"


def build_prompt(query: str, retrieved: Sequence[RetrievedItem]) -> str:
    """Build a single prompt: source blocks, the question, and an answer cue."""
    blocks = [f"Source: {format_source(item.metadata)}\n{item.text}" for item in retrieved]
    context_text = CONTEXT_SEPARATOR.join(blocks)
    return f"{PROMPT_HEADER}\n\n{context_text}\n\nQuestion: {query}\nAnswer:"
