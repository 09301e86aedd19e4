"""Tokenizer abstraction for the gateway."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from gateway.errors import ConfigurationError, TokenizationError

try:
    from transformers import AutoTokenizer, PreTrainedTokenizerFast
except ImportError as exc:  # pragma: no cover - dependency issue is explicit
    raise RuntimeError(
        "transformers is required for the gateway tokenizer. Install the project dependencies."
    ) from exc

logger = logging.getLogger("gateway.tokenizer")

PAIR_SEPARATOR = " [SEP] "


@dataclass(frozen=True)
class TokenizedSequence:
    ids: List[int]
    mask: List[int]

    def __len__(self) -> int:
        return len(self.ids)


class TokenizerAdapter:
    """Pretrained subword tokenizer wrapper producing id/mask sequences."""

    def __init__(self, tokenizer: Any, name: str = "tokenizer"):
        self.tokenizer = tokenizer
        self.name = name

    @classmethod
    def load(cls, source: Optional[str], tokenizer_file: Optional[str] = None) -> "TokenizerAdapter":
        """Load a tokenizer from a tokenizer.json file or a hub id / directory.

        ``tokenizer_file`` wins when both are given. Any failure raises
        ``ConfigurationError``; callers treat it as fatal at startup.
        """
        if tokenizer_file:
            logger.info("Loading tokenizer from file %s", tokenizer_file)
            try:
                tokenizer = PreTrainedTokenizerFast(tokenizer_file=tokenizer_file)
            except Exception as exc:
                raise ConfigurationError(
                    f"Failed to load tokenizer file {tokenizer_file}: {exc}"
                ) from exc
            return cls(tokenizer, name=tokenizer_file)

        if not source:
            raise ConfigurationError("Tokenizer source is not configured")
        logger.info("Loading tokenizer %s", source)
        try:
            tokenizer = AutoTokenizer.from_pretrained(source)
        except Exception as exc:
            raise ConfigurationError(f"Failed to load tokenizer {source}: {exc}") from exc
        return cls(tokenizer, name=source)

    def encode(self, text: str) -> TokenizedSequence:
        """Encode one text with the tokenizer's special tokens, untruncated."""
        try:
            encoding = self.tokenizer(
                text, add_special_tokens=True, truncation=False, padding=False
            )
        except Exception as exc:
            raise TokenizationError(str(exc)) from exc

        ids = [int(token) for token in encoding["input_ids"]]
        mask = encoding.get("attention_mask")
        if mask is None:
            mask = [1] * len(ids)
        return TokenizedSequence(ids=ids, mask=[int(flag) for flag in mask])

    def encode_batch(self, texts: Sequence[str]) -> List[TokenizedSequence]:
        return [self.encode(text) for text in texts]

    def encode_pair(self, query: str, document: str) -> TokenizedSequence:
        """Encode a (query, document) pair as one joined string.

        The joined string is re-tokenized as a whole, so special tokens are
        inserted once around it rather than per segment.
        """
        return self.encode(f"{query}{PAIR_SEPARATOR}{document}")


__all__ = ["TokenizedSequence", "TokenizerAdapter", "PAIR_SEPARATOR"]
