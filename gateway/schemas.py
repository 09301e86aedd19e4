"""Pydantic schemas for API requests and responses."""

from __future__ import annotations

import json
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from gateway.protocol import DEFAULT_TASK


class EmbeddingRequest(BaseModel):
    input: Union[str, List[str]] = Field(..., description="Text or list of texts to embed.")
    model: str = Field("jina-embeddings-v3", description="Model name echoed in the response.")
    encoding_format: str = Field("float", description="Accepted for compatibility; floats are returned.")
    task: str = Field(DEFAULT_TASK, description="Embedding task adapter, e.g. retrieval.passage.")
    user: Optional[str] = Field(None, description="Opaque end-user identifier.")

    def texts(self) -> List[str]:
        if isinstance(self.input, str):
            return [self.input]
        return list(self.input)


class EmbeddingData(BaseModel):
    object: str = "embedding"
    embedding: List[float]
    index: int


class EmbeddingUsage(BaseModel):
    prompt_tokens: int = 0
    total_tokens: int = 0


class EmbeddingResponse(BaseModel):
    object: str = "list"
    data: List[EmbeddingData]
    model: str
    usage: EmbeddingUsage = Field(default_factory=EmbeddingUsage)


def document_text(document: Any) -> str:
    """Strings pass through; any other JSON value becomes compact JSON with sorted keys."""
    if isinstance(document, str):
        return document
    return json.dumps(document, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


class RerankRequest(BaseModel):
    query: str = Field(..., description="Query the documents are ranked against.")
    documents: List[Union[str, Any]] = Field(..., description="Texts or JSON objects to rank.")
    model: str = Field("jina-reranker-v2", description="Model name echoed in the response.")
    top_n: Optional[int] = Field(None, ge=0, description="Return only the best N results.")
    return_documents: bool = Field(True, description="Echo document text in each result.")

    def document_texts(self) -> List[str]:
        return [document_text(document) for document in self.documents]


class RerankResultData(BaseModel):
    index: int
    relevance_score: float
    document: Optional[str] = None


class RerankUsage(BaseModel):
    total_tokens: int = 0


class RerankResponse(BaseModel):
    object: str = "list"
    data: List[RerankResultData]
    model: str
    usage: RerankUsage = Field(default_factory=RerankUsage)


class ServiceStatus(BaseModel):
    ready: bool


class HealthResponse(BaseModel):
    status: str
    embedding_service: ServiceStatus
    reranking_service: ServiceStatus
    queue_waiting: int
    queue_active: int


class ErrorResponse(BaseModel):
    error: str
