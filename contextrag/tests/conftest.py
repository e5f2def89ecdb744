from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["RAG_VECTORSTORE"] = "memory"
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["RAG_LLM_PROVIDER"] = "extractive"
os.environ["RAG_CHUNK_STRATEGY"] = "semantic"
os.environ["RAG_DATA_DIR"] = tempfile.mkdtemp(prefix="contextrag-uploads-")
os.environ.setdefault("RAG_METRICS_ENABLED", "true")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("HF_API_KEY", None)


import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
