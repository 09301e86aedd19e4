"""Process-wide, load-once model context."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from gateway.config import GatewaySettings
from gateway.errors import InternalError
from gateway.tokenizer import TokenizerAdapter

logger = logging.getLogger("gateway.context")

T = TypeVar("T")


class WriteOnce(Generic[T]):
    """Thread-safe cell that can be filled exactly once."""

    def __init__(self, name: str):
        self.name = name
        self._value: Optional[T] = None
        self._set = False
        self._lock = threading.Lock()

    @property
    def is_set(self) -> bool:
        return self._set

    def set(self, value: T) -> None:
        with self._lock:
            if self._set:
                raise InternalError(f"{self.name} already initialized")
            self._value = value
            self._set = True

    def get(self) -> T:
        if not self._set:
            raise InternalError(f"{self.name} not initialized")
        return self._value  # type: ignore[return-value]

    def get_or_init(self, factory: Callable[[], T]) -> T:
        """Return the value, running ``factory`` under the lock if unset.

        Concurrent callers block on the lock; the factory runs at most once.
        If it raises, the cell stays empty.
        """
        if self._set:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._set:
                self._value = factory()
                self._set = True
        return self._value  # type: ignore[return-value]


@dataclass(frozen=True)
class ModelContext:
    """Tokenizers shared read-only by every request."""

    embedding_tokenizer: TokenizerAdapter
    reranker_tokenizer: TokenizerAdapter


def load_model_context(settings: GatewaySettings) -> ModelContext:
    logger.info("Loading embedding tokenizer...")
    embedding_tokenizer = TokenizerAdapter.load(settings.tokenizer_path, settings.tokenizer_file)
    logger.info("Loading reranker tokenizer...")
    reranker_tokenizer = TokenizerAdapter.load(
        settings.reranker_tokenizer_path, settings.reranker_tokenizer_file
    )
    logger.info("Tokenizers loaded")
    return ModelContext(
        embedding_tokenizer=embedding_tokenizer, reranker_tokenizer=reranker_tokenizer
    )


__all__ = ["WriteOnce", "ModelContext", "load_model_context"]
