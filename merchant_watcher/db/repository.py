"""Database repository for merchants, sales, products and milestones."""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ..errors import (
    MerchantNotFound,
    MilestoneNotFound,
    MilestoneTypeInvalid,
    PersistenceFailure,
)
from .models import SCHEMA

logger = logging.getLogger(__name__)

MILESTONE_TRANSACTIONS = "transactions"
MILESTONE_VOLUME = "volume"
MILESTONE_TYPES = (MILESTONE_TRANSACTIONS, MILESTONE_VOLUME)

# SQLite INTEGER range
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Serialize a datetime so that string order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


async def _run(conn: aiosqlite.Connection, sql: str):
    async with conn.execute(sql):
        pass


def validate_milestone_type(milestone_type: str) -> str:
    """Return the normalized milestone type or raise MilestoneTypeInvalid."""
    normalized = (milestone_type or "").strip().lower()
    if normalized not in MILESTONE_TYPES:
        raise MilestoneTypeInvalid(
            f"Invalid milestone type {milestone_type!r}, "
            f"expected one of {', '.join(MILESTONE_TYPES)}"
        )
    return normalized


@dataclass
class Merchant:
    """A merchant whose POS data is polled."""

    id: str
    public_key: str
    alias: str
    enabled: bool = True
    last_polled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TransactionRecord:
    """A single normalized sale. Scoped to a merchant by the caller."""

    sale_id: int
    origin: str
    sale_date: datetime
    amount_sats: int


@dataclass
class ProductSnapshot:
    """Cumulative per-product stats as reported upstream."""

    product_id: int
    name: str
    currency: str
    price: str  # decimal string, kept verbatim
    total_transactions: int
    total_revenue_sats: int
    active: bool


@dataclass
class Milestone:
    """A cumulative threshold that fires once."""

    id: int
    name: str
    type: str  # transactions or volume
    threshold: int
    enabled: bool
    triggered_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def triggered(self) -> bool:
        return self.triggered_at is not None


@dataclass
class MilestoneTrigger:
    """Record of a milestone crossing its threshold."""

    id: int | None
    milestone_id: int
    name: str
    type: str
    threshold: int
    triggered_at: datetime
    total_transactions: int
    total_volume_sats: int


@dataclass
class Totals:
    """Global transaction totals across all merchants."""

    transactions: int
    volume_sats: int


def _merchant_from_row(row: aiosqlite.Row) -> Merchant:
    return Merchant(
        id=row["id"],
        public_key=row["public_key"],
        alias=row["alias"],
        enabled=bool(row["enabled"]),
        last_polled_at=from_db_time(row["last_polled_at"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _milestone_from_row(row: aiosqlite.Row) -> Milestone:
    return Milestone(
        id=row["id"],
        name=row["name"],
        type=row["type"].lower(),
        threshold=row["threshold"],
        enabled=bool(row["enabled"]),
        triggered_at=from_db_time(row["triggered_at"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _trigger_from_row(row: aiosqlite.Row) -> MilestoneTrigger:
    return MilestoneTrigger(
        id=row["id"],
        milestone_id=row["milestone_id"],
        name=row["name"],
        type=row["type"],
        threshold=row["threshold"],
        triggered_at=from_db_time(row["triggered_at"]),
        total_transactions=row["total_transactions"],
        total_volume_sats=row["total_volume_sats"],
    )


class UnitOfWork:
    """
    Statements executed inside one open SQLite transaction.

    Obtained from Repository.unit_of_work(); everything done through it
    commits or rolls back together.
    """

    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def execute(self, sql: str, params: Iterable = ()) -> int:
        """Execute a statement and return the number of rows it changed."""
        async with self.conn.execute(sql, tuple(params)) as cursor:
            return cursor.rowcount

    async def fetchone(self, sql: str, params: Iterable = ()) -> aiosqlite.Row | None:
        async with self.conn.execute(sql, tuple(params)) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Iterable = ()) -> list[aiosqlite.Row]:
        async with self.conn.execute(sql, tuple(params)) as cursor:
            return list(await cursor.fetchall())

    async def current_totals(self) -> Totals:
        row = await self.fetchone(
            "SELECT COUNT(*) AS count, COALESCE(SUM(amount_sats), 0) AS volume "
            "FROM transactions"
        )
        return Totals(transactions=row["count"], volume_sats=row["volume"])

    async def pending_milestones(self) -> list[Milestone]:
        rows = await self.fetchall(
            """
            SELECT * FROM milestones
            WHERE enabled = 1 AND triggered_at IS NULL
            ORDER BY threshold ASC, id ASC
            """
        )
        return [_milestone_from_row(row) for row in rows]

    async def claim_milestone(self, milestone_id: int, at: datetime) -> bool:
        """Move a milestone to triggered. False if it was no longer pending."""
        changed = await self.execute(
            """
            UPDATE milestones SET triggered_at = ?
            WHERE id = ? AND triggered_at IS NULL
            """,
            (to_db_time(at), milestone_id),
        )
        return changed == 1

    async def append_trigger(
        self,
        milestone: Milestone,
        at: datetime,
        totals: Totals,
    ) -> MilestoneTrigger:
        async with self.conn.execute(
            """
            INSERT INTO milestone_triggers (
                milestone_id, name, type, threshold, triggered_at,
                total_transactions, total_volume_sats
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                milestone.id,
                milestone.name,
                milestone.type,
                milestone.threshold,
                to_db_time(at),
                totals.transactions,
                totals.volume_sats,
            ),
        ) as cursor:
            trigger_id = cursor.lastrowid

        return MilestoneTrigger(
            id=trigger_id,
            milestone_id=milestone.id,
            name=milestone.name,
            type=milestone.type,
            threshold=milestone.threshold,
            triggered_at=at,
            total_transactions=totals.transactions,
            total_volume_sats=totals.volume_sats,
        )


class Repository:
    """Database repository for all persistence operations."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "Repository":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def initialize(self):
        """Initialize the database and create tables."""
        in_memory = str(self.db_path) == ":memory:"
        if not in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # Autocommit mode; transactions are opened explicitly per unit of work
            self._connection = await aiosqlite.connect(
                self.db_path, isolation_level=None
            )
            self._connection.row_factory = aiosqlite.Row

            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._connection.execute("PRAGMA busy_timeout = 5000")
            if not in_memory:
                await self._connection.execute("PRAGMA journal_mode = WAL")

            await self._connection.executescript(SCHEMA)
        except aiosqlite.Error as e:
            await self.close()
            raise PersistenceFailure(f"Could not initialize {self.db_path}: {e}") from e

        logger.info(f"Database initialized at {self.db_path}")

    async def close(self):
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if not self._connection:
            raise PersistenceFailure("Database not initialized. Call initialize() first.")
        return self._connection

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        """
        Open an atomic unit of work.

        Units are serialized by a lock because every coroutine shares the
        same connection. SQLite errors are rolled back and re-raised as
        PersistenceFailure; any other exception is rolled back and re-raised.
        """
        async with self._lock:
            conn = self.conn
            try:
                await _run(conn, "BEGIN IMMEDIATE")
            except aiosqlite.Error as e:
                raise PersistenceFailure(f"Could not begin transaction: {e}") from e

            try:
                yield UnitOfWork(conn)
            except aiosqlite.Error as e:
                await self._rollback(conn)
                raise PersistenceFailure(str(e)) from e
            except BaseException:
                await self._rollback(conn)
                raise

            try:
                await _run(conn, "COMMIT")
            except aiosqlite.Error as e:
                await self._rollback(conn)
                raise PersistenceFailure(f"Commit failed: {e}") from e

    async def _rollback(self, conn: aiosqlite.Connection):
        if conn.in_transaction:
            try:
                await _run(conn, "ROLLBACK")
            except aiosqlite.Error as e:
                logger.error(f"Rollback failed: {e}")

    # Merchant Operations

    async def upsert_merchant(self, merchant: Merchant):
        """Insert a merchant or update its key, alias and enabled flag."""
        now = to_db_time(utc_now())
        async with self.unit_of_work() as uow:
            await uow.execute(
                """
                INSERT INTO merchants (
                    id, public_key, alias, enabled, last_polled_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, NULL, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    public_key = excluded.public_key,
                    alias = excluded.alias,
                    enabled = excluded.enabled,
                    updated_at = excluded.updated_at
                """,
                (
                    merchant.id,
                    merchant.public_key,
                    merchant.alias,
                    int(merchant.enabled),
                    now,
                    now,
                ),
            )

    async def update_merchant(self, merchant: Merchant) -> Merchant:
        """Update an existing merchant's key, alias and enabled flag."""
        async with self.unit_of_work() as uow:
            changed = await uow.execute(
                """
                UPDATE merchants
                SET public_key = ?, alias = ?, enabled = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    merchant.public_key,
                    merchant.alias,
                    int(merchant.enabled),
                    to_db_time(utc_now()),
                    merchant.id,
                ),
            )
            if changed == 0:
                raise MerchantNotFound(f"Merchant {merchant.id} not found")
            row = await uow.fetchone("SELECT * FROM merchants WHERE id = ?", (merchant.id,))
        return _merchant_from_row(row)

    async def mark_polled(self, merchant_id: str, at: datetime):
        """Record when a merchant was last polled successfully."""
        ts = to_db_time(at)
        async with self.unit_of_work() as uow:
            await uow.execute(
                "UPDATE merchants SET last_polled_at = ?, updated_at = ? WHERE id = ?",
                (ts, ts, merchant_id),
            )

    async def get_merchant(self, merchant_id: str) -> Merchant | None:
        async with self.unit_of_work() as uow:
            row = await uow.fetchone("SELECT * FROM merchants WHERE id = ?", (merchant_id,))
        return _merchant_from_row(row) if row else None

    async def list_merchants(self, only_enabled: bool = False) -> list[Merchant]:
        """List merchants ordered by alias."""
        query = "SELECT * FROM merchants"
        if only_enabled:
            query += " WHERE enabled = 1"
        query += " ORDER BY alias ASC, id ASC"

        async with self.unit_of_work() as uow:
            rows = await uow.fetchall(query)
        return [_merchant_from_row(row) for row in rows]

    # Sales and Product Operations

    async def record_transactions(
        self,
        merchant_id: str,
        records: list[TransactionRecord],
    ) -> int:
        """
        Insert sales that are not stored yet.

        Rows whose (merchant_id, sale_id) already exists are skipped. The
        whole batch is one transaction.

        Returns:
            Number of rows actually inserted
        """
        if not records:
            return 0

        created_at = to_db_time(utc_now())
        inserted = 0
        async with self.unit_of_work() as uow:
            for record in records:
                inserted += await uow.execute(
                    """
                    INSERT INTO transactions (
                        merchant_id, sale_id, sale_origin, sale_date, amount_sats, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(merchant_id, sale_id) DO NOTHING
                    """,
                    (
                        merchant_id,
                        record.sale_id,
                        record.origin,
                        to_db_time(record.sale_date),
                        record.amount_sats,
                        created_at,
                    ),
                )
        return inserted

    async def upsert_products(self, merchant_id: str, products: list[ProductSnapshot]):
        """Overwrite cumulative product stats; the latest snapshot wins."""
        if not products:
            return

        updated_at = to_db_time(utc_now())
        async with self.unit_of_work() as uow:
            for product in products:
                await uow.execute(
                    """
                    INSERT INTO products (
                        merchant_id, product_id, name, currency, price,
                        total_transactions, total_revenue_sats, active, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(merchant_id, product_id) DO UPDATE SET
                        name = excluded.name,
                        currency = excluded.currency,
                        price = excluded.price,
                        total_transactions = excluded.total_transactions,
                        total_revenue_sats = excluded.total_revenue_sats,
                        active = excluded.active,
                        updated_at = excluded.updated_at
                    """,
                    (
                        merchant_id,
                        product.product_id,
                        product.name,
                        product.currency,
                        product.price,
                        product.total_transactions,
                        product.total_revenue_sats,
                        int(product.active),
                        updated_at,
                    ),
                )

    async def get_totals(self) -> Totals:
        async with self.unit_of_work() as uow:
            return await uow.current_totals()

    # Milestone Operations

    async def create_milestone(
        self,
        name: str,
        milestone_type: str,
        threshold: int,
        enabled: bool = True,
    ) -> Milestone:
        """Create a pending milestone."""
        milestone_type = validate_milestone_type(milestone_type)
        now = to_db_time(utc_now())
        async with self.unit_of_work() as uow:
            async with uow.conn.execute(
                """
                INSERT INTO milestones (name, type, threshold, enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, milestone_type, threshold, int(enabled), now, now),
            ) as cursor:
                milestone_id = cursor.lastrowid
            row = await uow.fetchone("SELECT * FROM milestones WHERE id = ?", (milestone_id,))
        return _milestone_from_row(row)

    async def update_milestone(
        self,
        milestone_id: int,
        name: str,
        milestone_type: str,
        threshold: int,
        enabled: bool,
        reset: bool = False,
    ) -> Milestone:
        """
        Update a milestone's configuration.

        With reset=True the milestone returns to pending; its earlier
        trigger records are kept.
        """
        milestone_type = validate_milestone_type(milestone_type)
        reset_clause = ", triggered_at = NULL" if reset else ""
        async with self.unit_of_work() as uow:
            changed = await uow.execute(
                f"""
                UPDATE milestones
                SET name = ?, type = ?, threshold = ?, enabled = ?, updated_at = ?{reset_clause}
                WHERE id = ?
                """,
                (
                    name,
                    milestone_type,
                    threshold,
                    int(enabled),
                    to_db_time(utc_now()),
                    milestone_id,
                ),
            )
            if changed == 0:
                raise MilestoneNotFound(f"Milestone {milestone_id} not found")
            row = await uow.fetchone("SELECT * FROM milestones WHERE id = ?", (milestone_id,))
        return _milestone_from_row(row)

    async def get_milestone(self, milestone_id: int) -> Milestone | None:
        async with self.unit_of_work() as uow:
            row = await uow.fetchone("SELECT * FROM milestones WHERE id = ?", (milestone_id,))
        return _milestone_from_row(row) if row else None

    async def list_milestones(self) -> list[Milestone]:
        async with self.unit_of_work() as uow:
            rows = await uow.fetchall("SELECT * FROM milestones ORDER BY threshold ASC, id ASC")
        return [_milestone_from_row(row) for row in rows]

    async def list_milestone_triggers(self, since: datetime) -> list[MilestoneTrigger]:
        """Get triggers recorded at or after `since`, newest first."""
        async with self.unit_of_work() as uow:
            rows = await uow.fetchall(
                """
                SELECT * FROM milestone_triggers
                WHERE triggered_at >= ?
                ORDER BY triggered_at DESC, id DESC
                """,
                (to_db_time(since),),
            )
        return [_trigger_from_row(row) for row in rows]
