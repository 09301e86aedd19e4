"""Configuration management for the Triton embedding/reranking gateway."""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """Pydantic-powered settings for the gateway."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    triton_url: str = Field(
        "triton:8000", description="Inference server address (host:port or full URL)."
    )
    triton_http_connection_timeout: float = Field(
        300.0, description="Connect timeout for backend calls, in seconds."
    )
    triton_http_network_timeout: float = Field(
        300.0, description="Read/write timeout for backend calls, in seconds."
    )
    embedding_model_name: str = Field(
        "jina-embeddings-v3", description="Backend model serving embeddings."
    )
    reranker_model_name: str = Field(
        "jina-reranker-v2", description="Backend model serving rerank scores."
    )
    tokenizer_path: Optional[str] = Field(
        "jinaai/jina-embeddings-v3",
        description="Hub id or local directory of the embedding tokenizer.",
    )
    reranker_tokenizer_path: Optional[str] = Field(
        "jinaai/jina-reranker-v2-base-multilingual",
        description="Hub id or local directory of the reranker tokenizer.",
    )
    tokenizer_file: Optional[str] = Field(
        None, description="Explicit tokenizer.json for embeddings; wins over tokenizer_path."
    )
    reranker_tokenizer_file: Optional[str] = Field(
        None, description="Explicit tokenizer.json for reranking; wins over reranker_tokenizer_path."
    )
    max_sequence_length: int = Field(
        8192, description="Maximum tokens per embedding row."
    )
    reranker_max_sequence_length: int = Field(
        1024, description="Maximum tokens per (query, document) row."
    )
    embedding_client_max_batch: int = Field(
        8, description="Maximum rows per embedding inference call."
    )
    reranker_client_max_batch: Optional[int] = Field(
        None, description="Maximum rows per rerank inference call (unset: one call)."
    )
    padding_policy: str = Field(
        "fixed", description="Row padding policy: 'fixed' or 'dynamic'."
    )
    max_concurrent_batches: int = Field(
        1, description="Sub-batch calls in flight per request (1 = sequential)."
    )
    max_concurrent_inferences: int = Field(
        8, description="Process-wide cap on in-flight inference calls."
    )
    embedding_output_name: str = Field(
        "13049", description="Output tensor name of the embedding model."
    )
    reranker_output_name: str = Field(
        "scores", description="Output tensor name of the reranker model."
    )
    api_title: str = Field("Jina AI API", description="OpenAPI title.")
    api_description: str = Field(
        "OpenAI-compatible embedding and reranking API powered by Triton Inference Server",
        description="OpenAPI description.",
    )
    api_version: str = Field("1.0.0", description="OpenAPI version.")
    api_key: Optional[str] = Field(None, description="Bearer key accepted on /v1 routes.")
    require_api_key: bool = Field(False, description="Reject /v1 calls without a valid key.")
    log_level: str = Field("INFO", description="Logging level for the gateway.")
    log_file: Optional[str] = Field(None, description="Optional file path for gateway logs.")
    port: int = Field(8000, description="Port for the HTTP server.")
    host: str = Field("0.0.0.0", description="Host for the HTTP server.")

    @field_validator(
        "max_sequence_length",
        "reranker_max_sequence_length",
        "embedding_client_max_batch",
        "max_concurrent_batches",
        "max_concurrent_inferences",
    )
    @classmethod
    def positive_ints(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Lengths, batch sizes and concurrency limits must be positive integers.")
        return value

    @field_validator("reranker_client_max_batch")
    @classmethod
    def positive_optional_batch(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("reranker_client_max_batch must be a positive integer.")
        return value

    @field_validator("padding_policy")
    @classmethod
    def validate_padding_policy(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in ("fixed", "dynamic"):
            raise ValueError("padding_policy must be 'fixed' or 'dynamic'.")
        return normalized

    @field_validator("log_level")
    @classmethod
    def uppercase_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def triton_base_url(self) -> str:
        """Backend URL with a scheme, without a trailing slash."""
        url = self.triton_url.rstrip("/")
        if "://" not in url:
            url = f"http://{url}"
        return url

    def configure_logging(self) -> None:
        """Configure root logging according to settings."""
        handlers = [logging.StreamHandler()]
        if self.log_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_file))
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            handlers=handlers,
        )


settings = GatewaySettings()
