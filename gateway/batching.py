"""Padding and chunking of tokenized batches."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Sequence, TypeVar

import torch

from gateway.tokenizer import TokenizedSequence

T = TypeVar("T")

PAD_TOKEN_ID = 0
PAD_MASK_VALUE = 0


class PaddingPolicy(str, enum.Enum):
    """How far rows are padded.

    FIXED pads every row to ``max_length`` so every batch of a pipeline has
    the same shape. DYNAMIC pads only to the longest (truncated) row present.
    """

    FIXED = "fixed"
    DYNAMIC = "dynamic"


@dataclass
class PaddedBatch:
    input_ids: torch.Tensor
    attention_mask: torch.Tensor

    @property
    def batch_size(self) -> int:
        return int(self.input_ids.size(0))

    @property
    def sequence_length(self) -> int:
        return int(self.input_ids.size(1))


def pad_batch(
    sequences: Sequence[TokenizedSequence],
    max_length: int,
    policy: PaddingPolicy = PaddingPolicy.FIXED,
) -> PaddedBatch:
    """Truncate and right-pad sequences into an ``[batch, seq_len]`` tensor pair."""
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    policy = PaddingPolicy(policy)

    truncated = [(seq.ids[:max_length], seq.mask[:max_length]) for seq in sequences]
    if policy is PaddingPolicy.FIXED:
        width = max_length
    else:
        width = max((len(ids) for ids, _ in truncated), default=0)

    input_ids = torch.full((len(truncated), width), PAD_TOKEN_ID, dtype=torch.long)
    attention_mask = torch.full((len(truncated), width), PAD_MASK_VALUE, dtype=torch.long)
    for row, (ids, mask) in enumerate(truncated):
        if ids:
            input_ids[row, : len(ids)] = torch.tensor(ids, dtype=torch.long)
            attention_mask[row, : len(mask)] = torch.tensor(mask, dtype=torch.long)
    return PaddedBatch(input_ids=input_ids, attention_mask=attention_mask)


def chunk(items: Sequence[T], max_batch_size: int) -> List[List[T]]:
    """Split items into order-preserving sub-lists of at most ``max_batch_size``."""
    if max_batch_size < 1:
        raise ValueError("max_batch_size must be >= 1")
    return [list(items[i : i + max_batch_size]) for i in range(0, len(items), max_batch_size)]


__all__ = ["PaddingPolicy", "PaddedBatch", "pad_batch", "chunk", "PAD_TOKEN_ID"]
