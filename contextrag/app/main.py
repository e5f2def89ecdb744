from __future__ import annotations

"""FastAPI application entrypoint for the semantic-chunking RAG service."""

import asyncio
import hashlib
import logging
import uuid

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contextrag.app.dependencies import (
    get_embedding_client,
    get_embedding_config_report,
    get_ingestion_pipeline,
    get_pipeline,
    get_vectorstore,
)
from contextrag.app.metrics import (
    CHUNKS_INDEXED,
    UPSTREAM_FAILURES,
    metrics_middleware,
    metrics_response,
)
from contextrag.app.schemas import (
    ChatRequest,
    ChatResponse,
    EmbeddingHealthResponse,
    ErrorResponse,
    IngestResponse,
    RetrievedChunk,
    StatsHealthResponse,
    StatsResponse,
)
from contextrag.app.settings import settings
from contextrag.loaders.staging import read_staged, stage_uploads
from contextrag.rag.embeddings import EmbeddingConfigError
from contextrag.rag.errors import UpstreamServiceError, ValidationError
from contextrag.rag.llm import LLMConfigError
from contextrag.vectorstore.base import VectorStoreConfigError, call_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Context RAG Service", version="0.1.0")

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    502: {"model": ErrorResponse, "description": "Upstream service failure"},
}


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    """Missing files or query text are client errors."""
    logger.info(
        "request_rejected",
        extra={"request_id": _request_id(request), "detail": str(exc)},
    )
    return _error(400, str(exc))


@app.exception_handler(UpstreamServiceError)
async def handle_upstream_error(request: Request, exc: UpstreamServiceError) -> JSONResponse:
    """Embedding, store and generation failures surface the upstream message."""
    kind = type(exc).__name__
    UPSTREAM_FAILURES.labels(kind).inc()
    logger.error(
        "upstream_failure",
        extra={"request_id": _request_id(request), "kind": kind, "detail": str(exc)},
    )
    return _error(502, str(exc))


@app.exception_handler(EmbeddingConfigError)
@app.exception_handler(VectorStoreConfigError)
@app.exception_handler(LLMConfigError)
async def handle_config_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "service_misconfigured",
        extra={"request_id": _request_id(request), "detail": str(exc)},
    )
    return _error(500, str(exc))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid":
        return _error(400, "Invalid JSON body")
    location = ".".join(
        str(part) for part in first.get("loc", ()) if part != "body" and not isinstance(part, int)
    )
    message = first.get("msg", "Invalid request")
    return _error(400, f"{location}: {message}" if location else message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error(exc.status_code, detail)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse, responses=ERROR_RESPONSES)
async def stats() -> StatsResponse:
    """Return record counts for the configured collection."""
    store = get_vectorstore()
    collection = await call_store(
        "get_or_create_collection", store.get_or_create_collection, settings.collection_name
    )
    count = await call_store("count", collection.count)
    return StatsResponse(
        backend=store.backend,
        collection=settings.collection_name,
        document_count=count,
        embedding_dimension=get_embedding_client().dimension,
    )


@app.get("/stats/health", response_model=StatsHealthResponse)
async def stats_health() -> StatsHealthResponse:
    """Return vector store health status."""
    store = get_vectorstore()
    report = await asyncio.to_thread(store.health)
    return StatsHealthResponse(**report)


@app.get("/stats/embedding", response_model=EmbeddingHealthResponse)
async def embedding_health() -> EmbeddingHealthResponse:
    """Return embedding configuration health checks."""
    report = get_embedding_config_report()
    return EmbeddingHealthResponse(**report.__dict__)


@app.post("/index", response_model=IngestResponse, responses=ERROR_RESPONSES)
@app.post("/upload", response_model=IngestResponse, responses=ERROR_RESPONSES)
async def upload(
    http_request: Request,
    files: list[UploadFile] | None = File(default=None),
    context: str | None = Header(default=None),
) -> IngestResponse:
    """Chunk, embed and index uploaded files under one context."""
    request_id = _request_id(http_request)
    if not files:
        raise ValidationError("No files")
    pipeline = get_ingestion_pipeline()
    logger.info(
        "ingest_received",
        extra={"request_id": request_id, "file_count": len(files), "context": context},
    )
    async with stage_uploads(files, settings.data_dir, settings.file_max_bytes) as staged:
        documents = [await asyncio.to_thread(read_staged, item) for item in staged]
        result = await pipeline.ingest(documents, context=context)
    CHUNKS_INDEXED.inc(result.chunks)
    return IngestResponse(
        ok=True,
        msg=f"Indexed {result.chunks} chunks for context: {result.context}",
        chunks=result.chunks,
        context=result.context,
    )


@app.post("/query", response_model=ChatResponse, responses=ERROR_RESPONSES)
@app.post("/chat", response_model=ChatResponse, responses=ERROR_RESPONSES)
async def chat(request: ChatRequest, http_request: Request) -> ChatResponse:
    """Answer a question from passages retrieved under an optional context."""
    if not request.q or not request.q.strip():
        raise ValidationError("Missing query")
    request_id = _request_id(http_request)
    logger.info(
        "query_received",
        extra={
            "request_id": request_id,
            "query_length": len(request.q),
            "query_hash": hashlib.sha256(request.q.encode("utf-8")).hexdigest(),
            "top_k": request.k,
            "context": request.c,
        },
    )
    pipeline = get_pipeline()
    response = await pipeline.answer(request.q, top_k=request.k, context=request.c)
    logger.info(
        "query_completed",
        extra={
            "request_id": request_id,
            "retrieved": len(response.retrieved),
            "answer_length": len(response.answer),
        },
    )
    return ChatResponse(
        answer=response.answer,
        retrieved=[
            RetrievedChunk(text=item.text, metadata=item.metadata) for item in response.retrieved
        ],
    )


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.strip().lower(),
    )


if __name__ == "__main__":
    run()
