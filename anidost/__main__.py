"""Command line entry point: ``python -m anidost`` or ``anidost``."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

import uvicorn

from app.config import get_settings

logger = logging.getLogger("anidost")


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="anidost", description="Serve the Anidost catalog API.")
    parser.add_argument("--host", default=settings.server_host)
    parser.add_argument("--port", type=int, default=settings.server_port)
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=settings.environment == "development",
        help="Restart the server when source files change.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Start uvicorn with settings, overridable from the command line."""

    options = build_parser().parse_args(argv)
    logger.info(
        "Starting %s on %s:%s (%s backend)",
        get_settings().app_name,
        options.host,
        options.port,
        get_settings().backend,
    )
    uvicorn.run(
        "app.main:app",
        host=options.host,
        port=options.port,
        reload=options.reload,
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
