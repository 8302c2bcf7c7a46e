"""Concierge service entry point."""

import asyncio
import logging

from concierge.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from concierge.server import ConciergeServer

    server = ConciergeServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the HTTP server and block until interrupted."""
    logger.info("Starting concierge with model %s...", settings.concierge_model)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
