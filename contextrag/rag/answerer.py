from __future__ import annotations

"""Offline generator that answers with an extract of the best passage."""

from dataclasses import dataclass

from contextrag.rag.prompts import CONTEXT_SEPARATOR, PROMPT_HEADER


@dataclass
class ExtractiveAnswerer:
    """Return a short extract from the highest ranked passage in the prompt."""
    max_chars: int = 480

    async def generate(self, prompt: str) -> str:
        """Generate an extractive answer from a prompt built by ``build_prompt``."""
        body = prompt.removeprefix(PROMPT_HEADER).strip()
        body = body.rsplit("\n\nQuestion:", 1)[0]
        first_block = body.split(CONTEXT_SEPARATOR, 1)[0]
        lines = first_block.split("\n", 1)
        passage = lines[1] if len(lines) > 1 and lines[0].startswith("Source:") else first_block
        snippet = self._truncate(passage.strip())
        if not snippet:
            return ""
        return f"Based on the provided context: {snippet}"

    def _truncate(self, text: str) -> str:
        """Trim text to the max character budget without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."
