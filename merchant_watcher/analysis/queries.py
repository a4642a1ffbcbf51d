"""Read-only dashboard views computed from stored sales and products."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from ..db import MilestoneTrigger, Repository, from_db_time, to_db_time, utc_now

METRIC_TRANSACTIONS = "transactions"
METRIC_VOLUME = "volume"


@dataclass
class Summary:
    """Headline dashboard metrics."""

    total_transactions: int
    total_volume_sats: int
    average_transaction_sats: float
    active_merchants: int
    total_merchants: int
    active_products: int
    transactions_per_minute: float = 0.0
    volume_per_minute: float = 0.0


@dataclass
class TickerEntry:
    """A recent sale for the live ticker."""

    sale_id: int
    merchant_id: str
    merchant_alias: str
    amount_sats: int
    sale_date: datetime


@dataclass
class MerchantLeaderboardRow:
    merchant_id: str
    alias: str
    transactions: int
    volume_sats: int


@dataclass
class ProductLeaderboardRow:
    merchant_id: str
    product_id: int
    name: str
    transactions: int
    volume_sats: int


def _by_volume(metric: str | None) -> bool:
    return (metric or "").strip().lower() == METRIC_VOLUME


def _check_limit(limit: int):
    if limit <= 0:
        raise ValueError(f"limit must be > 0, got {limit}")


class DashboardQueries:
    """Aggregations over the repository. Nothing here writes."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def get_summary(
        self,
        window_minutes: float | None = None,
        now: datetime | None = None,
    ) -> Summary:
        """
        Totals, average sale size, merchant/product counts and, when a
        window is given, per-minute rates over that trailing window.
        """
        now = now or utc_now()
        async with self.repository.unit_of_work() as uow:
            totals = await uow.current_totals()
            merchants = await uow.fetchone(
                "SELECT COUNT(*) AS total, COALESCE(SUM(enabled), 0) AS enabled FROM merchants"
            )
            products = await uow.fetchone(
                "SELECT COUNT(*) AS count FROM products WHERE active = 1"
            )

            window_count = window_volume = 0
            if window_minutes and window_minutes > 0:
                start = now - timedelta(minutes=window_minutes)
                window = await uow.fetchone(
                    """
                    SELECT COUNT(*) AS count, COALESCE(SUM(amount_sats), 0) AS volume
                    FROM transactions
                    WHERE sale_date >= ?
                    """,
                    (to_db_time(start),),
                )
                window_count, window_volume = window["count"], window["volume"]

        average = (
            totals.volume_sats / totals.transactions if totals.transactions > 0 else 0.0
        )
        summary = Summary(
            total_transactions=totals.transactions,
            total_volume_sats=totals.volume_sats,
            average_transaction_sats=average,
            active_merchants=merchants["enabled"],
            total_merchants=merchants["total"],
            active_products=products["count"],
        )
        if window_minutes and window_minutes > 0:
            summary.transactions_per_minute = window_count / window_minutes
            summary.volume_per_minute = window_volume / window_minutes
        return summary

    async def get_ticker(self, limit: int = 20) -> list[TickerEntry]:
        """Most recent sales, newest first, with the merchant alias."""
        _check_limit(limit)
        async with self.repository.unit_of_work() as uow:
            rows = await uow.fetchall(
                """
                SELECT t.sale_id, t.merchant_id, m.alias, t.amount_sats, t.sale_date
                FROM transactions t
                JOIN merchants m ON m.id = t.merchant_id
                ORDER BY t.sale_date DESC, t.id DESC
                LIMIT ?
                """,
                (limit,),
            )
        return [
            TickerEntry(
                sale_id=row["sale_id"],
                merchant_id=row["merchant_id"],
                merchant_alias=row["alias"],
                amount_sats=row["amount_sats"],
                sale_date=from_db_time(row["sale_date"]),
            )
            for row in rows
        ]

    async def get_merchant_leaderboard(
        self,
        window_minutes: float | None = None,
        metric: str = METRIC_TRANSACTIONS,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[MerchantLeaderboardRow]:
        """
        Rank merchants by transaction count or volume.

        Only sales inside the trailing window count; without a window
        the ranking is all-time. Ties go to the alphabetically first alias.
        """
        _check_limit(limit)
        params: list = []
        query = """
            SELECT t.merchant_id, m.alias,
                   COUNT(t.id) AS tx_count,
                   COALESCE(SUM(t.amount_sats), 0) AS volume
            FROM transactions t
            JOIN merchants m ON m.id = t.merchant_id
        """
        if window_minutes and window_minutes > 0:
            start = (now or utc_now()) - timedelta(minutes=window_minutes)
            query += " WHERE t.sale_date >= ?"
            params.append(to_db_time(start))

        order = "volume" if _by_volume(metric) else "tx_count"
        query += f" GROUP BY t.merchant_id ORDER BY {order} DESC, m.alias ASC LIMIT ?"
        params.append(limit)

        async with self.repository.unit_of_work() as uow:
            rows = await uow.fetchall(query, params)
        return [
            MerchantLeaderboardRow(
                merchant_id=row["merchant_id"],
                alias=row["alias"],
                transactions=row["tx_count"],
                volume_sats=row["volume"],
            )
            for row in rows
        ]

    async def get_product_leaderboard(
        self,
        metric: str = METRIC_TRANSACTIONS,
        limit: int = 10,
    ) -> list[ProductLeaderboardRow]:
        """Rank active products by cumulative transactions or revenue (all-time)."""
        _check_limit(limit)
        order = "total_revenue_sats" if _by_volume(metric) else "total_transactions"
        async with self.repository.unit_of_work() as uow:
            rows = await uow.fetchall(
                f"""
                SELECT merchant_id, product_id, name, total_transactions, total_revenue_sats
                FROM products
                WHERE active = 1
                ORDER BY {order} DESC, name ASC
                LIMIT ?
                """,
                (limit,),
            )
        return [
            ProductLeaderboardRow(
                merchant_id=row["merchant_id"],
                product_id=row["product_id"],
                name=row["name"],
                transactions=row["total_transactions"],
                volume_sats=row["total_revenue_sats"],
            )
            for row in rows
        ]

    async def list_milestone_triggers(self, since: datetime) -> list[MilestoneTrigger]:
        """Milestone triggers at or after `since`, newest first."""
        return await self.repository.list_milestone_triggers(since)
