from __future__ import annotations

"""DOCX loader for document ingestion."""

from io import BytesIO


class DocxLoaderError(RuntimeError):
    """Raised when DOCX loading fails."""
    pass


def load_docx_bytes(data: bytes) -> str:
    """Extract paragraph and table text from DOCX bytes."""
    try:
        from docx import Document as DocxDocument
    except ImportError as exc:
        raise DocxLoaderError("python-docx is required to load DOCX files") from exc

    try:
        doc = DocxDocument(BytesIO(data))
    except Exception as exc:
        raise DocxLoaderError(f"Unreadable DOCX file: {exc}") from exc
    parts: list[str] = []
    for paragraph in doc.paragraphs:
        text = paragraph.text.strip()
        if text:
            parts.append(text)

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    return "\n".join(parts).strip()
