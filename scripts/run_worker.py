"""
Script to run the enrichment background jobs until SIGINT/SIGTERM
"""

import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from enrichment.scheduler import EnrichmentScheduler

logger = logging.getLogger(__name__)


async def run_worker():
    """Run the metadata and rating jobs until asked to stop"""
    setup_logging()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler = EnrichmentScheduler.from_settings(settings)
    scheduler.start()
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down enrichment worker")
        await scheduler.shutdown(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)


if __name__ == "__main__":
    asyncio.run(run_worker())
