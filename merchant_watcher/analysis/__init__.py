"""Dashboard queries and console output."""

from .dashboard import (
    format_sats,
    print_merchant_leaderboard,
    print_product_leaderboard,
    print_summary,
    print_ticker,
    print_triggers,
)
from .queries import (
    METRIC_TRANSACTIONS,
    METRIC_VOLUME,
    DashboardQueries,
    MerchantLeaderboardRow,
    ProductLeaderboardRow,
    Summary,
    TickerEntry,
)

__all__ = [
    "DashboardQueries",
    "Summary",
    "TickerEntry",
    "MerchantLeaderboardRow",
    "ProductLeaderboardRow",
    "METRIC_TRANSACTIONS",
    "METRIC_VOLUME",
    "format_sats",
    "print_summary",
    "print_ticker",
    "print_merchant_leaderboard",
    "print_product_leaderboard",
    "print_triggers",
]
