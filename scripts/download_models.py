"""Download the ONNX weights served by Triton into a model repository layout.

Each model lands in ``<repository>/<model-name>/1/model.onnx``, the layout
Triton's ONNX Runtime backend expects.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

from huggingface_hub import hf_hub_download

logger = logging.getLogger("scripts.download_models")


@dataclass(frozen=True)
class ModelDownload:
    repo_id: str
    filename: str
    model_name: str
    display_name: str


MODELS: List[ModelDownload] = [
    ModelDownload(
        repo_id="jinaai/jina-embeddings-v3",
        filename="onnx/model_fp16.onnx",
        model_name="jina-embeddings-v3",
        display_name="Jina Embeddings v3",
    ),
    ModelDownload(
        repo_id="jinaai/jina-reranker-v2-base-multilingual",
        filename="onnx/model_fp16.onnx",
        model_name="jina-reranker-v2",
        display_name="Jina Reranker v2 Base Multilingual",
    ),
]


def target_path(repository: Path, model: ModelDownload) -> Path:
    return repository / model.model_name / "1" / "model.onnx"


def download_model(model: ModelDownload, repository: Path, force: bool = False) -> Path:
    target = target_path(repository, model)
    if target.exists() and not force:
        logger.info("SKIP %s: %s already exists", model.display_name, target)
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Downloading %s (%s/%s)", model.display_name, model.repo_id, model.filename)
    downloaded = Path(
        hf_hub_download(repo_id=model.repo_id, filename=model.filename, force_download=force)
    )
    shutil.copyfile(downloaded, target)
    logger.info("Saved %s (%.1f MB)", target, target.stat().st_size / (1024 * 1024))
    return target


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download ONNX models for Triton.")
    parser.add_argument(
        "--repository",
        type=Path,
        default=Path("model_repository"),
        help="Triton model repository root (default: ./model_repository).",
    )
    parser.add_argument("--force", action="store_true", help="Re-download existing files.")
    return parser.parse_args()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
    args = parse_args()
    failed = []
    for model in MODELS:
        try:
            download_model(model, args.repository, force=args.force)
        except Exception:
            logger.exception("Failed to download %s", model.display_name)
            failed.append(model.display_name)

    if failed:
        logger.error("Failed downloads: %s", ", ".join(failed))
        return 1
    logger.info("All models downloaded to %s", args.repository)
    return 0


if __name__ == "__main__":
    sys.exit(main())
