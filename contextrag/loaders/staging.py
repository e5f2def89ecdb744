from __future__ import annotations

"""Temporary on-disk staging of uploaded files for a single ingest request."""

import logging
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, AsyncIterator, Sequence

from fastapi import UploadFile

from contextrag.rag.errors import ValidationError
from contextrag.rag.types import RawDocument

logger = logging.getLogger(__name__)

_READ_SIZE = 65536


@dataclass(frozen=True)
class StagedFile:
    """Upload written to the staging directory."""
    filename: str
    path: Path


def read_staged(staged: StagedFile) -> RawDocument:
    """Load a staged file back into memory."""
    return RawDocument(filename=staged.filename, content=staged.path.read_bytes())


async def _write_upload(upload: UploadFile, target: IO[bytes], max_bytes: int | None) -> int:
    """Stream upload bytes into ``target`` with a hard size limit."""
    written = 0
    while True:
        data = await upload.read(_READ_SIZE)
        if not data:
            break
        written += len(data)
        if max_bytes and max_bytes > 0 and written > max_bytes:
            raise ValidationError(
                f"{upload.filename or 'upload'} exceeds maximum size of {max_bytes} bytes"
            )
        target.write(data)
    return written


@asynccontextmanager
async def stage_uploads(
    uploads: Sequence[UploadFile],
    directory: str | Path,
    max_bytes: int | None = None,
) -> AsyncIterator[list[StagedFile]]:
    """Write uploads to temp files and remove every one of them on exit."""
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)
    staged: list[StagedFile] = []
    try:
        for idx, upload in enumerate(uploads, start=1):
            filename = upload.filename or f"upload-{idx}"
            with tempfile.NamedTemporaryFile(
                dir=root, prefix="upload-", suffix=Path(filename).suffix, delete=False
            ) as handle:
                staged.append(StagedFile(filename=filename, path=Path(handle.name)))
                size = await _write_upload(upload, handle, max_bytes)
            logger.debug("upload_staged", extra={"source": filename, "bytes": size})
        yield staged
    finally:
        for item in staged:
            item.path.unlink(missing_ok=True)
        if staged:
            logger.debug("uploads_released", extra={"count": len(staged)})
