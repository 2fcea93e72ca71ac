"""
Main entry point for watching a JSON endpoint on a cron schedule.

Usage:
    python watch_main.py [URL] [SCHEDULE]

URL and SCHEDULE default to the WATCH_URL and WATCH_SCHEDULE settings.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, List

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.logger import setup_logging, get_logger, WatchLogger
from utilities.config import config
from sources.http_source import HttpJsonSource
from watcher.watch_loop import watch


def log_new_items(changes: List[Any]) -> None:
    """Callback logging every newly observed item."""
    logger = get_logger("watch_main")
    for item in changes:
        logger.info("New item", item=item)
    logger.info("Changes reported", count=len(changes))


async def main():
    """Main function to start watching."""
    url = sys.argv[1] if len(sys.argv) > 1 else config.watch_url
    schedule = sys.argv[2] if len(sys.argv) > 2 else config.watch_schedule

    if len(sys.argv) > 3 or not url:
        print("Usage: python watch_main.py [URL] [SCHEDULE]")
        print("URL may also be set with the WATCH_URL environment variable")
        sys.exit(1)

    level = config.get_log_level()
    setup_logging(
        log_level=logging.getLevelName(level.stdlib_level),
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    logger = get_logger(__name__)

    source = HttpJsonSource(
        url,
        items_path=config.items_path,
        timeout=config.request_timeout,
        retry_attempts=config.retry_attempts,
        retry_delay=config.retry_delay,
        headers=config.get_headers()
    )
    options = config.to_watch_options()

    print("\n" + "=" * 60)
    print(f"👀 Watching {url}")
    print(f"⏰ Schedule: {schedule} ({options.timezone})")
    print(f"🎲 Dithering: ±{options.dithering:.0f} ms")
    print("=" * 60)

    try:
        watcher = await watch(
            schedule,
            source,
            log_new_items,
            options,
            logger=WatchLogger(level, name="watcher")
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, watcher.cancel)

        await watcher.wait()
        logger.info("Watcher stopped", state=watcher.state.value)

    except Exception as e:
        logger.error("Watcher failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
