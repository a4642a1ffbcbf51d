"""CLI tool to print the sales dashboard from the watcher database."""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from .analysis import (
    METRIC_TRANSACTIONS,
    METRIC_VOLUME,
    DashboardQueries,
    print_merchant_leaderboard,
    print_product_leaderboard,
    print_summary,
    print_ticker,
    print_triggers,
)
from .analysis.dashboard import print_footer
from .config import load_config
from .db import Repository, utc_now
from .errors import WatcherError


async def main_async(args):
    """Async main function."""
    # Set up logging
    log_level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = load_config(args.config)
    except (FileNotFoundError, WatcherError) as e:
        logging.error(str(e))
        sys.exit(1)

    window = args.window if args.window is not None else config.dashboard.rate_window_minutes
    limit = args.limit or config.dashboard.leaderboard_limit

    async with Repository(config.database.path) as repository:
        queries = DashboardQueries(repository)

        summary = await queries.get_summary(window)
        print_summary(summary, window)

        print_ticker(await queries.get_ticker(config.dashboard.ticker_limit))

        # Leaderboard is all-time unless a window was asked for explicitly
        merchants = await queries.get_merchant_leaderboard(args.window, args.metric, limit)
        print_merchant_leaderboard(merchants, args.metric, args.window)

        print_product_leaderboard(
            await queries.get_product_leaderboard(args.metric, limit), args.metric
        )

        since = utc_now() - timedelta(hours=args.since_hours)
        print_triggers(await queries.list_milestone_triggers(since))

    print_footer()


def positive_int(value: str) -> int:
    """argparse type for counts that must be > 0."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the report argument parser."""
    parser = argparse.ArgumentParser(
        description="Print merchant sales totals, leaderboards and milestones",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # All-time dashboard
  python -m merchant_watcher.report

  # Merchants ranked by volume over the last 15 minutes
  python -m merchant_watcher.report --window 15 --metric volume
        """,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )

    parser.add_argument(
        "--window",
        "-w",
        type=float,
        default=None,
        help="Trailing window in minutes for rates and the merchant leaderboard",
    )

    parser.add_argument(
        "--metric",
        "-m",
        choices=[METRIC_TRANSACTIONS, METRIC_VOLUME],
        default=METRIC_TRANSACTIONS,
        help="Leaderboard ranking metric (default: transactions)",
    )

    parser.add_argument(
        "--limit",
        "-l",
        type=positive_int,
        default=None,
        help="Leaderboard size (default: dashboard.leaderboard_limit)",
    )

    parser.add_argument(
        "--since-hours",
        type=float,
        default=24,
        help="Show milestones reached in the last N hours (default: 24)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def main():
    """CLI entry point."""
    args = build_parser().parse_args()

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        print("\nReport interrupted.")
        sys.exit(0)


if __name__ == "__main__":
    main()
