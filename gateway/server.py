"""FastAPI application exposing the embedding and reranking endpoints."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway.config import GatewaySettings, settings
from gateway.context import ModelContext, WriteOnce, load_model_context
from gateway.errors import GatewayError, NotReadyError
from gateway.pipelines import EmbeddingPipeline, RerankingPipeline
from gateway.queue import InferenceQueue
from gateway.schemas import (
    EmbeddingData,
    EmbeddingRequest,
    EmbeddingResponse,
    ErrorResponse,
    HealthResponse,
    RerankRequest,
    RerankResponse,
    RerankResultData,
    ServiceStatus,
)
from gateway.triton import TritonClient

logger = logging.getLogger("gateway.server")

PROTECTED_PREFIX = "/v1/"
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Bad request"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
    503: {"model": ErrorResponse, "description": "Inference server unavailable"},
}


def _provided_api_key(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer ") :]
    return header


def create_app(
    runtime_settings: GatewaySettings = settings,
    context: Optional[ModelContext] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the app. Tokenizers load in the lifespan unless ``context`` is given."""
    runtime_settings.configure_logging()

    context_cell: WriteOnce[ModelContext] = WriteOnce("model context")
    if context is not None:
        context_cell.set(context)
    queue = InferenceQueue(runtime_settings.max_concurrent_inferences)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        model_context = await asyncio.to_thread(
            context_cell.get_or_init, lambda: load_model_context(runtime_settings)
        )
        triton = TritonClient(
            runtime_settings.triton_base_url,
            timeout=runtime_settings.triton_http_network_timeout,
            connect_timeout=runtime_settings.triton_http_connection_timeout,
            queue=queue,
            http_client=http_client,
        )
        app.state.embedding = EmbeddingPipeline.from_settings(runtime_settings, model_context, triton)
        app.state.reranking = RerankingPipeline.from_settings(runtime_settings, model_context, triton)

        for name, pipeline in (("Embedding", app.state.embedding), ("Reranking", app.state.reranking)):
            if await pipeline.is_ready():
                logger.info("%s service is ready", name)
            else:
                logger.warning("%s service is not ready", name)
        logger.info("%s v%s started", runtime_settings.api_title, runtime_settings.api_version)
        try:
            yield
        finally:
            await triton.aclose()

    app = FastAPI(
        title=runtime_settings.api_title,
        version=runtime_settings.api_version,
        description=runtime_settings.api_description,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        if not runtime_settings.require_api_key or not request.url.path.startswith(PROTECTED_PREFIX):
            return await call_next(request)
        if not runtime_settings.api_key:
            logger.warning("REQUIRE_API_KEY is true but API_KEY is not configured")
            return JSONResponse(status_code=500, content={"error": "API key is not configured"})
        provided = _provided_api_key(request)
        if not provided:
            logger.warning("Missing API key in request")
            return JSONResponse(status_code=401, content={"error": "Missing API key"})
        if provided != runtime_settings.api_key:
            logger.warning("Invalid API key provided")
            return JSONResponse(status_code=401, content={"error": "Invalid API key"})
        return await call_next(request)

    @app.middleware("http")
    async def log_and_time(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Process-Time-ms"] = f"{elapsed_ms:.2f}"
        logger.info("%s %s - %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return JSONResponse(status_code=422, content={"error": details})

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health(request: Request):
        embedding_ready = await request.app.state.embedding.is_ready()
        reranking_ready = await request.app.state.reranking.is_ready()
        stats = queue.stats()
        return HealthResponse(
            status="ok",
            embedding_service=ServiceStatus(ready=embedding_ready),
            reranking_service=ServiceStatus(ready=reranking_ready),
            queue_waiting=stats.waiting,
            queue_active=stats.active,
        )

    @app.get("/health/ready", response_model=HealthResponse, tags=["Health"], responses=ERROR_RESPONSES)
    async def ready(request: Request):
        response = await health(request)
        if not response.embedding_service.ready:
            raise NotReadyError("Embedding model is not ready")
        if not response.reranking_service.ready:
            raise NotReadyError("Reranking model is not ready")
        return response

    @app.post(
        "/v1/embeddings",
        response_model=EmbeddingResponse,
        tags=["Embeddings"],
        responses=ERROR_RESPONSES,
    )
    async def create_embeddings(body: EmbeddingRequest, request: Request):
        texts = body.texts()
        results = await request.app.state.embedding.create_embeddings(texts, body.task)
        logger.info("Processed embedding request for %s texts", len(texts))
        return EmbeddingResponse(
            data=[EmbeddingData(embedding=result.embedding, index=result.index) for result in results],
            model=body.model,
        )

    @app.post(
        "/v1/rerank",
        response_model=RerankResponse,
        response_model_exclude_none=True,
        tags=["Reranking"],
        responses=ERROR_RESPONSES,
    )
    async def rerank(body: RerankRequest, request: Request):
        documents = body.document_texts()
        results = await request.app.state.reranking.rerank(
            body.query,
            documents,
            top_n=body.top_n,
            return_documents=body.return_documents,
        )
        logger.info("Reranked %s documents", len(documents))
        return RerankResponse(
            data=[
                RerankResultData(
                    index=result.index,
                    relevance_score=result.relevance_score,
                    document=result.document,
                )
                for result in results
            ],
            model=body.model,
        )

    return app


app = create_app()
