from __future__ import annotations

"""Decode uploaded documents to text by file type."""

import logging
from pathlib import Path

from contextrag.loaders.docx import DocxLoaderError, load_docx_bytes
from contextrag.loaders.markdown import load_markdown_bytes
from contextrag.loaders.pdf import PDFLoaderError, load_pdf_bytes
from contextrag.loaders.text import load_text_bytes
from contextrag.rag.errors import ValidationError
from contextrag.rag.types import RawDocument

logger = logging.getLogger(__name__)


def decode_document(document: RawDocument) -> str:
    """Return the text content of an uploaded document.

    PDF and DOCX files go through their extractors, Markdown has its markup
    stripped, and anything else is read as UTF-8 text.
    """
    suffix = Path(document.filename).suffix.lower()
    try:
        if suffix == ".pdf":
            return load_pdf_bytes(document.content)
        if suffix == ".docx":
            return load_docx_bytes(document.content)
        if suffix in {".md", ".markdown"}:
            return load_markdown_bytes(document.content)
    except (PDFLoaderError, DocxLoaderError) as exc:
        logger.warning(
            "document_decode_failed",
            extra={"source": document.filename, "detail": str(exc)},
        )
        raise ValidationError(f"{document.filename}: {exc}") from exc
    return load_text_bytes(document.content)
