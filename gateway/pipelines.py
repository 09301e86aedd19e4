"""Embedding and reranking pipelines built on the tokenizer, batcher and Triton client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from gateway.batching import PaddingPolicy, chunk, pad_batch
from gateway.config import GatewaySettings
from gateway.context import ModelContext
from gateway.errors import GatewayError, ValidationError
from gateway.protocol import DEFAULT_TASK, build_request, resolve_task_id, task_id_tensor
from gateway.tokenizer import TokenizerAdapter
from gateway.triton import TritonClient

logger = logging.getLogger("gateway.pipelines")

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class EmbeddingResult:
    index: int
    embedding: List[float]


@dataclass(frozen=True)
class RerankResult:
    index: int
    relevance_score: float
    document: Optional[str] = None


async def run_in_order(
    batches: Sequence[T],
    call: Callable[[T], Awaitable[R]],
    max_concurrent: int = 1,
) -> List[R]:
    """Run ``call`` over every batch and return results in batch order.

    With ``max_concurrent == 1`` batches run strictly one after another and
    the first failure stops the loop. Otherwise up to ``max_concurrent``
    calls are in flight; a failure cancels the rest and propagates.
    """
    if max_concurrent <= 1 or len(batches) <= 1:
        results = []
        for batch in batches:
            results.append(await call(batch))
        return results

    semaphore = asyncio.Semaphore(max_concurrent)

    async def _bounded(batch: T) -> R:
        async with semaphore:
            return await call(batch)

    tasks = [asyncio.ensure_future(_bounded(batch)) for batch in batches]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class _BackendPipeline:
    def __init__(
        self,
        *,
        tokenizer: TokenizerAdapter,
        client: TritonClient,
        model_name: str,
        output_name: str,
        max_length: int,
        max_batch: Optional[int],
        padding_policy: PaddingPolicy = PaddingPolicy.FIXED,
        max_concurrent_batches: int = 1,
    ):
        self.tokenizer = tokenizer
        self.client = client
        self.model_name = model_name
        self.output_name = output_name
        self.max_length = max_length
        self.max_batch = max_batch
        self.padding_policy = PaddingPolicy(padding_policy)
        self.max_concurrent_batches = max_concurrent_batches

    async def is_ready(self) -> bool:
        """Backend is live and this model is loaded. Probe failures read as not ready."""
        try:
            live = await self.client.is_server_live()
            ready = await self.client.is_model_ready(self.model_name)
        except GatewayError as exc:
            logger.warning("Readiness probe for %s failed: %s", self.model_name, exc)
            return False
        return live and ready


class EmbeddingPipeline(_BackendPipeline):
    """Turns N texts into N embedding vectors, in input order."""

    @classmethod
    def from_settings(
        cls, settings: GatewaySettings, context: ModelContext, client: TritonClient
    ) -> "EmbeddingPipeline":
        return cls(
            tokenizer=context.embedding_tokenizer,
            client=client,
            model_name=settings.embedding_model_name,
            output_name=settings.embedding_output_name,
            max_length=settings.max_sequence_length,
            max_batch=settings.embedding_client_max_batch,
            padding_policy=PaddingPolicy(settings.padding_policy),
            max_concurrent_batches=settings.max_concurrent_batches,
        )

    async def create_embeddings(
        self, texts: Sequence[str], task: str = DEFAULT_TASK
    ) -> List[EmbeddingResult]:
        if not texts:
            raise ValidationError("Text input cannot be empty")

        task_id = resolve_task_id(task)
        logger.info("Generating embeddings for %s texts with task '%s'", len(texts), task)

        async def _embed(batch_texts: List[str]) -> List[List[float]]:
            padded = pad_batch(
                self.tokenizer.encode_batch(batch_texts), self.max_length, self.padding_policy
            )
            request = build_request(
                padded, self.output_name, [task_id_tensor(task_id, padded.batch_size)]
            )
            logger.info(
                "Embedding batch: batch_size=%s seq_length=%s task_id=%s",
                padded.batch_size,
                padded.sequence_length,
                task_id,
            )
            vectors = await self.client.infer(self.model_name, request, padded.batch_size)
            return vectors.tolist()

        batches = chunk(list(texts), self.max_batch or len(texts))
        per_batch = await run_in_order(batches, _embed, self.max_concurrent_batches)
        vectors = [vector for batch_vectors in per_batch for vector in batch_vectors]

        results = [EmbeddingResult(index=i, embedding=vector) for i, vector in enumerate(vectors)]
        logger.info("Successfully generated %s embeddings", len(results))
        return results


class RerankingPipeline(_BackendPipeline):
    """Scores (query, document) pairs and orders documents by relevance."""

    @classmethod
    def from_settings(
        cls, settings: GatewaySettings, context: ModelContext, client: TritonClient
    ) -> "RerankingPipeline":
        return cls(
            tokenizer=context.reranker_tokenizer,
            client=client,
            model_name=settings.reranker_model_name,
            output_name=settings.reranker_output_name,
            max_length=settings.reranker_max_sequence_length,
            max_batch=settings.reranker_client_max_batch,
            padding_policy=PaddingPolicy(settings.padding_policy),
            max_concurrent_batches=settings.max_concurrent_batches,
        )

    async def rerank(
        self,
        query: str,
        documents: Sequence[str],
        top_n: Optional[int] = None,
        return_documents: bool = True,
    ) -> List[RerankResult]:
        """Return documents sorted by descending score, optionally cut to ``top_n``.

        Equal scores keep their original document order.
        """
        if not documents:
            raise ValidationError("Documents cannot be empty")

        logger.info("Reranking %s documents", len(documents))

        async def _score(batch_documents: List[str]) -> List[float]:
            padded = pad_batch(
                [self.tokenizer.encode_pair(query, document) for document in batch_documents],
                self.max_length,
                self.padding_policy,
            )
            request = build_request(padded, self.output_name)
            scores = await self.client.infer(self.model_name, request, padded.batch_size)
            return scores[:, 0].tolist()

        batches = chunk(list(documents), self.max_batch or len(documents))
        per_batch = await run_in_order(batches, _score, self.max_concurrent_batches)
        scores = [score for batch_scores in per_batch for score in batch_scores]

        results = [
            RerankResult(
                index=index,
                relevance_score=score,
                document=documents[index] if return_documents else None,
            )
            for index, score in enumerate(scores)
        ]
        results = sorted(results, key=lambda result: result.relevance_score, reverse=True)
        if top_n is not None:
            results = results[:top_n]

        logger.info("Successfully reranked documents, returning %s results", len(results))
        return results


__all__ = [
    "EmbeddingResult",
    "RerankResult",
    "EmbeddingPipeline",
    "RerankingPipeline",
    "run_in_order",
]
