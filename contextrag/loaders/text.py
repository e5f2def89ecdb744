from __future__ import annotations

"""Plain text loader for ingestion."""


def load_text_bytes(data: bytes) -> str:
    """Decode plain text bytes, dropping undecodable sequences."""
    return data.decode("utf-8", errors="ignore")
