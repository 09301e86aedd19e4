"""KServe v2 / Triton JSON tensor protocol: request building and response decoding."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import pydantic
import torch
from pydantic import BaseModel, Field, model_validator

from gateway.batching import PaddedBatch
from gateway.errors import InferenceError

logger = logging.getLogger("gateway.protocol")

INT64 = "INT64"

TASK_IDS: Dict[str, int] = {
    "retrieval.query": 0,
    "retrieval.passage": 1,
    "separation": 2,
    "classification": 3,
    "text-matching": 4,
}
DEFAULT_TASK = "retrieval.query"


class InferInputTensor(BaseModel):
    name: str
    shape: List[int]
    datatype: str = INT64
    data: List[int]

    @model_validator(mode="after")
    def shape_matches_data(self) -> "InferInputTensor":
        if math.prod(self.shape) != len(self.data):
            raise ValueError(
                f"tensor {self.name!r}: shape {self.shape} does not match {len(self.data)} values"
            )
        return self


class InferRequestedOutput(BaseModel):
    name: str


class InferRequest(BaseModel):
    inputs: List[InferInputTensor]
    outputs: List[InferRequestedOutput]


class InferOutputTensor(BaseModel):
    name: str
    shape: List[int]
    datatype: str = "FP32"
    data: List[float]


class InferResponse(BaseModel):
    model_config = pydantic.ConfigDict(protected_namespaces=())

    model_name: Optional[str] = None
    model_version: Optional[str] = None
    outputs: List[InferOutputTensor] = Field(default_factory=list)


def resolve_task_id(task: Optional[str]) -> int:
    """Map a task name to the adapter id the embedding model expects.

    Unknown names fall back to ``retrieval.query`` (0) instead of failing.
    """
    if task in TASK_IDS:
        return TASK_IDS[task]
    logger.warning("Unknown task %r, falling back to %s", task, DEFAULT_TASK)
    return TASK_IDS[DEFAULT_TASK]


def tensor_input(name: str, tensor: torch.Tensor) -> InferInputTensor:
    """Flatten an integer tensor into a named INT64 wire input."""
    return InferInputTensor(
        name=name,
        shape=[int(dim) for dim in tensor.shape],
        datatype=INT64,
        data=tensor.to(torch.long).flatten().tolist(),
    )


def task_id_tensor(task_id: int, batch_size: int) -> InferInputTensor:
    return tensor_input("task_id", torch.full((batch_size, 1), task_id, dtype=torch.long))


def build_request(
    batch: PaddedBatch,
    output_name: str,
    extra_inputs: Optional[Sequence[InferInputTensor]] = None,
) -> InferRequest:
    inputs = [
        tensor_input("input_ids", batch.input_ids),
        tensor_input("attention_mask", batch.attention_mask),
    ]
    inputs.extend(extra_inputs or [])
    return InferRequest(inputs=inputs, outputs=[InferRequestedOutput(name=output_name)])


def parse_response(body: Any, expected_rows: int) -> torch.Tensor:
    """Decode an infer response body into a ``[rows, width]`` float tensor.

    Only the first output is used. Its flat ``data`` is split into rows of
    ``shape[1]`` values (one value per row for a 1-D shape).
    """
    try:
        response = InferResponse.model_validate(body)
    except pydantic.ValidationError as exc:
        raise InferenceError(f"Failed to parse response: {exc}") from exc

    if not response.outputs:
        raise InferenceError("No output from Triton")
    output = response.outputs[0]

    width = output.shape[1] if len(output.shape) > 1 else 1
    if width <= 0:
        raise InferenceError(f"Output {output.name!r} has invalid shape {output.shape}")
    if len(output.data) % width != 0:
        raise InferenceError(
            f"Output {output.name!r} has {len(output.data)} values, not divisible by width {width}"
        )

    values = torch.tensor(output.data, dtype=torch.float64).view(-1, width)
    if values.size(0) != expected_rows:
        raise InferenceError(
            f"Output {output.name!r} has {values.size(0)} rows, expected {expected_rows}"
        )
    if torch.isnan(values).any():
        raise InferenceError(f"Output {output.name!r} contains NaN values")
    return values


__all__ = [
    "TASK_IDS",
    "DEFAULT_TASK",
    "InferInputTensor",
    "InferRequestedOutput",
    "InferRequest",
    "InferOutputTensor",
    "InferResponse",
    "resolve_task_id",
    "tensor_input",
    "task_id_tensor",
    "build_request",
    "parse_response",
]
