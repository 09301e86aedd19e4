"""Async HTTP client for the Triton inference server."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
import torch

from gateway.errors import BackendConnectionError, InferenceError
from gateway.protocol import InferRequest, parse_response
from gateway.queue import InferenceQueue

logger = logging.getLogger("gateway.triton")


class TritonClient:
    """Talks to ``/v2`` health, readiness and infer endpoints.

    No retries: a failed call surfaces to the caller immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 300.0,
        connect_timeout: float = 300.0,
        queue: Optional[InferenceQueue] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.queue = queue
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout)
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def is_server_live(self) -> bool:
        response = await self._get("/v2/health/live")
        return response.is_success

    async def is_model_ready(self, model: str) -> bool:
        response = await self._get(f"/v2/models/{model}/ready")
        return response.is_success

    async def infer(self, model: str, request: InferRequest, expected_rows: int) -> torch.Tensor:
        """POST an infer request and return the first output as ``[rows, width]``."""
        url = f"{self.base_url}/v2/models/{model}/infer"
        payload = request.model_dump()
        logger.info("Sending inference request to %s (rows=%s)", url, expected_rows)

        if self.queue is None:
            response = await self._post(url, payload)
        else:
            async with self.queue.acquire():
                response = await self._post(url, payload)

        if not response.is_success:
            logger.error(
                "Triton inference failed with status %s: %s", response.status_code, response.text
            )
            raise InferenceError(
                f"Triton returned error {response.status_code}: {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise InferenceError(f"Failed to parse response: {exc}") from exc
        return parse_response(body, expected_rows)

    async def _get(self, path: str) -> httpx.Response:
        try:
            return await self.http.get(f"{self.base_url}{path}")
        except httpx.HTTPError as exc:
            raise BackendConnectionError(str(exc) or exc.__class__.__name__) from exc

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        try:
            return await self.http.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise BackendConnectionError(str(exc) or exc.__class__.__name__) from exc


__all__ = ["TritonClient"]
