"""Gateway package: embedding and reranking on top of a Triton inference server."""

from .config import GatewaySettings, settings
from .pipelines import EmbeddingPipeline, RerankingPipeline
from .tokenizer import TokenizerAdapter

__all__ = ["GatewaySettings", "settings", "EmbeddingPipeline", "RerankingPipeline", "TokenizerAdapter"]
