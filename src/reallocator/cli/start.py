# src/reallocator/cli/start.py
"""
Start command for the Reallocator CLI.

Builds the controller manager, runs it until SIGINT or SIGTERM, and shuts
it down cleanly so in-flight reconciles are cancelled at their next await.
"""

import asyncio
import logging
import signal
import traceback

import typer

from ..core.config import config
from ..core.factory import build_manager, get_cloud_provider

logger = logging.getLogger(__name__)


async def _async_start() -> None:
    if config.OTEL_ENABLED:
        from ..core.telemetry import initialize_telemetry

        initialize_telemetry()

    manager = await build_manager()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    await manager.start()
    logger.info("Reallocator is running. Press CTRL+C to exit.")
    try:
        await stop_event.wait()
        logger.info("Received shutdown signal, stopping controllers...")
    finally:
        await manager.stop()
        await get_cloud_provider().close()
    logger.info("Reallocator stopped.")


def start() -> None:
    """
    Start the reallocation and termination controllers.
    """
    logger.info("Initializing Reallocator...")
    try:
        asyncio.run(_async_start())
    except KeyboardInterrupt:
        logger.info("Shutting down Reallocator.")
        raise typer.Exit()
    except Exception as e:
        logger.error(f"An unexpected error occurred during startup: {e}")
        logger.error("Startup failed: %s", traceback.format_exc())
        raise typer.Exit(code=1)
