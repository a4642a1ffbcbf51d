"""Main entry point for Merchant Watcher."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from .alerting import MilestoneLogger, setup_app_logging
from .api import PosApiClient
from .config import Config, load_config
from .db import Merchant, Repository
from .errors import WatcherError
from .ingest import Poller
from .milestones import MilestoneEvaluator

logger = logging.getLogger(__name__)


class MerchantWatcher:
    """Main application class that orchestrates all components."""

    def __init__(self, config: Config):
        self.config = config

        # Initialize components
        self.repository = Repository(config.database.path)
        self.pos_api = PosApiClient(
            base_url=config.poller.base_url,
            timeout=config.poller.http_timeout_seconds,
        )
        self.milestone_logger = MilestoneLogger(
            log_file=config.logging.file,
            log_level=config.logging.level,
            max_file_size_mb=config.logging.max_file_size_mb,
            backup_count=config.logging.backup_count,
        )
        self.evaluator = MilestoneEvaluator(self.repository)
        self.poller = Poller(
            repository=self.repository,
            api_client=self.pos_api,
            evaluator=self.evaluator,
            interval_seconds=config.poller.interval_seconds,
            concurrency=config.poller.concurrency,
            on_trigger=self.milestone_logger.on_trigger,
        )

    async def start(self):
        """Open the database and apply configured seed data."""
        logger.info("Starting Merchant Watcher...")

        await self.repository.initialize()
        await self.seed()

        merchants = await self.repository.list_merchants(only_enabled=True)
        logger.info(
            f"Polling {len(merchants)} enabled merchants every "
            f"{self.config.poller.interval_seconds:g}s "
            f"(concurrency={self.config.poller.concurrency})"
        )

    async def seed(self):
        """Register configured merchants and create missing milestones."""
        for seed in self.config.merchants:
            await self.repository.upsert_merchant(
                Merchant(
                    id=seed.id,
                    public_key=seed.public_key,
                    alias=seed.alias,
                    enabled=seed.enabled,
                )
            )

        existing = {m.name for m in await self.repository.list_milestones()}
        for seed in self.config.milestones:
            if seed.name in existing:
                continue
            milestone = await self.repository.create_milestone(
                name=seed.name,
                milestone_type=seed.type,
                threshold=seed.threshold,
                enabled=seed.enabled,
            )
            existing.add(milestone.name)
            logger.info(f"Created milestone {milestone.name} ({milestone.type} >= {milestone.threshold:,})")

    async def run(self):
        """Run the periodic poll loop."""
        await self.poller.run()

    async def stop(self):
        """Stop the watcher gracefully."""
        logger.info("Stopping Merchant Watcher...")
        self.poller.stop()

        await self.pos_api.close()
        await self.repository.close()
        self.milestone_logger.close()

        # Log final stats
        stats = self.poller.stats
        logger.info(
            f"Final stats: {stats['cycles']} cycles, {stats['merchants_polled']} merchant polls, "
            f"{stats['failures']} failures, {stats['transactions_inserted']} new transactions, "
            f"{stats['milestones_triggered']} milestones triggered"
        )


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Merchant Watcher - Ingest merchant POS sales and track milestones"
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    return parser.parse_args()


async def main_async(args):
    """Async main function."""
    # Load configuration
    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    try:
        config = load_config(config_path)
    except WatcherError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Override log level if debug flag is set
    if args.debug:
        config.logging.level = "DEBUG"

    # Set up logging
    setup_app_logging(config.logging.level)

    watcher = MerchantWatcher(config)
    try:
        await watcher.start()
    except WatcherError as e:
        logger.error(f"Startup failed: {e}")
        await watcher.stop()
        sys.exit(1)

    if args.once:
        try:
            await watcher.poller.run_poll_cycle()
        finally:
            await watcher.stop()
        return

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    # Start poller in background
    poller_task = asyncio.create_task(watcher.run())

    # Wait for shutdown signal
    await shutdown_event.wait()

    # Cancelling the loop also cancels in-flight merchant requests
    poller_task.cancel()
    try:
        await poller_task
    except asyncio.CancelledError:
        pass

    await watcher.stop()


def main():
    """Main entry point."""
    args = parse_args()

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
