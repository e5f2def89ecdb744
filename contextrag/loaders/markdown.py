from __future__ import annotations

"""Markdown loader for ingestion."""

import re

from contextrag.loaders.text import load_text_bytes

_FENCE_RE = re.compile(r"^\s*```.*$", re.MULTILINE)
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)\s*#*\s*$", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|\*|`)(.+?)\1")
_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")


def load_markdown_bytes(data: bytes) -> str:
    """Decode Markdown bytes and strip the most common inline markup.

    Headings become standalone sentences so that a heading never merges into
    the first sentence of its section during segmentation.
    """
    text = load_text_bytes(data)
    text = _FENCE_RE.sub("", text)
    text = _HEADING_RE.sub(lambda match: _as_sentence(match.group(1)), text)
    text = _LINK_RE.sub(r"\1", text)
    return _EMPHASIS_RE.sub(r"\2", text)


def _as_sentence(heading: str) -> str:
    heading = heading.strip()
    if not heading or heading[-1] in ".!?":
        return heading
    return f"{heading}."
