"""CLI entry point for the Integration Tool Gateway."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .server import build_server

logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = await build_server(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=int(settings.shutdown_timeout_seconds),
    )
    server = uvicorn.Server(config)
    logger.info("Server is running on http://localhost:%s", settings.port)
    await server.serve()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
