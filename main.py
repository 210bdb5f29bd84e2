"""
Main entry point for the website change watcher.
"""

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sitewatch.app import run_watcher
from sitewatch.config import load_config
from sitewatch.errors import ConfigError


async def main() -> int:
    """Load configuration, then run the watches once or on their schedules."""
    load_dotenv()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )
    logger = logging.getLogger(__name__)

    config_file = os.getenv("SITEWATCH_CONFIG", "config.yaml")
    try:
        config = load_config(config_file)
    except ConfigError as e:
        logger.error(f"Invalid configuration in {config_file}: {e}")
        return 1

    if not config.enabled_watches:
        logger.error(f"No enabled watches in {config_file}. Exiting.")
        return 1

    scheduler_mode = os.getenv("SCHEDULER_MODE", "enabled")
    if scheduler_mode == "disabled":
        logger.info("Running every watch once...")
        results = await run_watcher(config, once=True)
        failed = sum(1 for r in results if r is None or r.classification.kind == "hard_error")
        logger.info(f"Done: {len(results)} watch(es) run, {failed} with errors")
        return 0

    logger.info("Starting website watcher with scheduler...")

    # Setup graceful shutdown
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

    await run_watcher(config, stop_event=stop_event)
    logger.info("Shutdown complete")
    return 0


def run_watcher_system():
    """Entry point that can be called from other scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_watcher_system()
