from __future__ import annotations

"""PDF text extraction and cleanup."""

import re


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


_WHITESPACE_RE = re.compile(r"\s+")


def _clean_pdf_text(text: str) -> str:
    """Join hyphenated line breaks and collapse layout whitespace."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = re.sub(r"(\w)-\n(\w)", r"\1\2", cleaned)
    cleaned = cleaned.replace("\n", " ")
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def load_pdf_bytes(data: bytes) -> str:
    """Extract text from PDF bytes page by page."""
    try:
        import fitz
    except ImportError as exc:
        raise PDFLoaderError("PyMuPDF is required to load PDF files") from exc

    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PDFLoaderError(f"Unreadable PDF file: {exc}") from exc
    with reader:
        text_parts = [page.get_text() or "" for page in reader]
    return _clean_pdf_text("\n".join(text_parts))
