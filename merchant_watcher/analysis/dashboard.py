"""Console dashboard for displaying sales aggregates."""

from datetime import datetime

from ..db import MilestoneTrigger
from .queries import (
    MerchantLeaderboardRow,
    ProductLeaderboardRow,
    Summary,
    TickerEntry,
)


def format_sats(value: float) -> str:
    """Format a sats amount with thousands separators."""
    if value == int(value):
        return f"{int(value):,} sats"
    return f"{value:,.2f} sats"


def format_large_number(value: float) -> str:
    """Format large numbers with K/M suffixes."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    elif value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return f"{value:,.0f}"


def create_bar(value: float, max_value: float, width: int = 20) -> str:
    """Create a simple ASCII progress bar."""
    if max_value <= 0:
        return " " * width
    filled = int((value / max_value) * width)
    filled = min(filled, width)
    return "█" * filled + "░" * (width - filled)


def truncate(text: str, width: int) -> str:
    return text[: width - 3] + "..." if len(text) > width else text


def print_header(title: str, width: int = 80):
    """Print a section header."""
    print()
    print("═" * width)
    print(f"  {title}")
    print("═" * width)


def print_summary(summary: Summary, window_minutes: float | None = None):
    """Print headline metrics."""
    print()
    print("╔" + "═" * 78 + "╗")
    print("║" + " MERCHANT SALES DASHBOARD ".center(78) + "║")
    print("╚" + "═" * 78 + "╝")

    print(f"""
  ┌────────────────────────┬────────────────────────┬────────────────────────┐
  │   TRANSACTIONS         │   VOLUME (SATS)        │   AVG SALE (SATS)      │
  │   {summary.total_transactions:>18,}   │   {format_large_number(summary.total_volume_sats):>18}   │   {summary.average_transaction_sats:>18,.1f}   │
  └────────────────────────┴────────────────────────┴────────────────────────┘
    """)

    print(f"  Merchants:       {summary.active_merchants:>6} enabled / {summary.total_merchants} total")
    print(f"  Active Products: {summary.active_products:>6}")
    if window_minutes:
        print(f"  Last {window_minutes:g} min:")
        print(f"    Tx/min:        {summary.transactions_per_minute:>10.2f}")
        print(f"    Sats/min:      {summary.volume_per_minute:>10,.1f}")


def print_ticker(entries: list[TickerEntry]):
    """Print the most recent sales."""
    print_header("LIVE TICKER")
    if not entries:
        print("    No sales recorded yet")
        return

    print()
    print("    Time (UTC)           Merchant                          Amount")
    print("    " + "─" * 72)
    for entry in entries:
        print(
            f"    {entry.sale_date.strftime('%Y-%m-%d %H:%M:%S'):<20} "
            f"{truncate(entry.merchant_alias, 32):<33} {format_sats(entry.amount_sats):>17}"
        )


def print_merchant_leaderboard(
    rows: list[MerchantLeaderboardRow],
    metric: str,
    window_minutes: float | None = None,
):
    """Print merchants ranked by the chosen metric."""
    scope = f"last {window_minutes:g} min" if window_minutes else "all-time"
    print_header(f"TOP MERCHANTS BY {metric.upper()} ({scope})")
    if not rows:
        print("    No merchant activity in this window")
        return

    by_volume = metric.lower() == "volume"
    top = max((r.volume_sats if by_volume else r.transactions) for r in rows)
    print()
    for rank, row in enumerate(rows, start=1):
        value = row.volume_sats if by_volume else row.transactions
        print(
            f"    {rank:>2}. {truncate(row.alias, 28):<28} {create_bar(value, top, 15)} "
            f"{row.transactions:>7,} tx  {format_sats(row.volume_sats):>17}"
        )


def print_product_leaderboard(rows: list[ProductLeaderboardRow], metric: str):
    """Print active products ranked by cumulative stats."""
    print_header(f"TOP PRODUCTS BY {metric.upper()}")
    if not rows:
        print("    No active products")
        return

    print()
    for rank, row in enumerate(rows, start=1):
        print(
            f"    {rank:>2}. {truncate(row.name, 36):<36} "
            f"{row.transactions:>7,} tx  {format_sats(row.volume_sats):>17}"
        )


def print_triggers(triggers: list[MilestoneTrigger]):
    """Print recently reached milestones."""
    print_header("MILESTONES REACHED")
    if not triggers:
        print("    None in this period")
        return

    print()
    for trigger in triggers:
        print(
            f"    🎉 {trigger.triggered_at.strftime('%Y-%m-%d %H:%M:%S')}  {trigger.name}"
            f"  ({trigger.type} >= {trigger.threshold:,})"
        )


def print_footer():
    print()
    print("─" * 80)
    print(f"  Generated at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("─" * 80)
    print()
