"""Entrypoint script to launch the gateway with Uvicorn."""

from __future__ import annotations

import argparse

import uvicorn

from gateway.config import GatewaySettings
from gateway.server import create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Triton embedding/reranking gateway.")
    parser.add_argument("--host", type=str, default=None, help="Host to bind (default from settings).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default from settings).")
    parser.add_argument(
        "--reload", action="store_true", help="Enable autoreload (development only, requires watchfiles)."
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = GatewaySettings()
    host = args.host or settings.host
    port = args.port or settings.port

    if args.reload:
        # reload needs an import string; the module-level app reads the same environment
        uvicorn.run(
            "gateway.server:app",
            host=host,
            port=port,
            log_level=settings.log_level.lower(),
            reload=True,
        )
        return

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
