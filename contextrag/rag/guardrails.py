from __future__ import annotations

from dataclasses import dataclass

from contextrag.rag.types import RetrievedItem


NO_MATCH_ANSWER = "No matching documents found."


@dataclass(frozen=True)
class GuardrailResult:
    allowed: bool
    reason: str


def require_context(retrieved: list[RetrievedItem]) -> GuardrailResult:
    if not retrieved:
        return GuardrailResult(allowed=False, reason="no_context")
    return GuardrailResult(allowed=True, reason="ok")
