"""Tests for the idempotent SQLite repository."""

import asyncio
from datetime import datetime, timezone

import pytest

from merchant_watcher.db import ProductSnapshot, Repository, TransactionRecord
from merchant_watcher.errors import (
    MerchantNotFound,
    MilestoneNotFound,
    MilestoneTypeInvalid,
    PersistenceFailure,
)

SALE_DATE = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def records(*amounts: int, start: int = 1) -> list[TransactionRecord]:
    return [
        TransactionRecord(sale_id=start + i, origin="pos", sale_date=SALE_DATE, amount_sats=amount)
        for i, amount in enumerate(amounts)
    ]


def snapshot(product_id: int, name: str, transactions: int, revenue: int, active: bool = True):
    return ProductSnapshot(
        product_id=product_id,
        name=name,
        currency="SAT",
        price="1000",
        total_transactions=transactions,
        total_revenue_sats=revenue,
        active=active,
    )


def test_record_transactions_is_idempotent(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            batch = records(100, 200)

            first = await repo.record_transactions("m1", batch)
            totals_after_first = await repo.get_totals()
            second = await repo.record_transactions("m1", batch)
            totals_after_second = await repo.get_totals()

        assert first == 2
        assert second == 0
        assert totals_after_first == totals_after_second
        assert totals_after_second.transactions == 2
        assert totals_after_second.volume_sats == 300

    asyncio.run(scenario())


def test_partial_resubmission_counts_only_new_rows(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.record_transactions("m1", records(100, 200))
            inserted = await repo.record_transactions("m1", records(100, 200, 300))
            totals = await repo.get_totals()

        assert inserted == 1
        assert totals.transactions == 3
        assert totals.volume_sats == 600

    asyncio.run(scenario())


def test_sale_ids_are_scoped_per_merchant(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.upsert_merchant(make_merchant("m2"))
            a = await repo.record_transactions("m1", records(100))
            b = await repo.record_transactions("m2", records(100))
            totals = await repo.get_totals()

        assert (a, b) == (1, 1)
        assert totals.transactions == 2

    asyncio.run(scenario())


def test_empty_batch_inserts_nothing(db_path):
    async def scenario():
        async with Repository(db_path) as repo:
            return await repo.record_transactions("m1", [])

    assert asyncio.run(scenario()) == 0


def test_failed_batch_rolls_back_completely(db_path):
    """Unknown merchant violates the foreign key; nothing from the batch is kept."""

    async def scenario():
        async with Repository(db_path) as repo:
            with pytest.raises(PersistenceFailure):
                await repo.record_transactions("ghost", records(100, 200))
            return await repo.get_totals()

    totals = asyncio.run(scenario())
    assert totals.transactions == 0
    assert totals.volume_sats == 0


def test_repository_usable_after_rollback(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            with pytest.raises(PersistenceFailure):
                await repo.record_transactions("ghost", records(100))
            return await repo.record_transactions("m1", records(100))

    assert asyncio.run(scenario()) == 1


def test_uninitialized_repository_raises_persistence_failure(db_path):
    async def scenario():
        repo = Repository(db_path)
        with pytest.raises(PersistenceFailure):
            await repo.list_merchants()

    asyncio.run(scenario())


def test_upsert_products_last_write_wins(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.upsert_products("m1", [snapshot(1, "Espresso", 5, 5000)])
            await repo.upsert_products("m1", [snapshot(1, "Espresso Doppio", 8, 9000, active=False)])
            async with repo.unit_of_work() as uow:
                return await uow.fetchall("SELECT * FROM products")

    rows = asyncio.run(scenario())
    assert len(rows) == 1
    assert rows[0]["name"] == "Espresso Doppio"
    assert rows[0]["total_transactions"] == 8
    assert rows[0]["total_revenue_sats"] == 9000
    assert rows[0]["active"] == 0


def test_list_merchants_orders_by_alias_and_filters(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1", alias="Zebra Bar"))
            await repo.upsert_merchant(make_merchant("m2", alias="Apple Stand"))
            await repo.upsert_merchant(make_merchant("m3", alias="Mango Cart", enabled=False))
            return await repo.list_merchants(), await repo.list_merchants(only_enabled=True)

    everything, enabled = asyncio.run(scenario())
    assert [m.alias for m in everything] == ["Apple Stand", "Mango Cart", "Zebra Bar"]
    assert [m.id for m in enabled] == ["m2", "m1"]


def test_upsert_merchant_updates_existing_row(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1", alias="Old"))
            await repo.upsert_merchant(make_merchant("m1", alias="New", enabled=False))
            return await repo.get_merchant("m1"), await repo.get_merchant("missing")

    merchant, missing = asyncio.run(scenario())
    assert merchant.alias == "New"
    assert merchant.enabled is False
    assert missing is None


def test_update_unknown_merchant_raises(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            with pytest.raises(MerchantNotFound):
                await repo.update_merchant(make_merchant("nobody"))

    asyncio.run(scenario())


def test_mark_polled_sets_timestamp(db_path, make_merchant):
    polled_at = datetime(2026, 10, 19, 12, 0, 5, tzinfo=timezone.utc)

    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            before = await repo.get_merchant("m1")
            await repo.mark_polled("m1", polled_at)
            after = await repo.get_merchant("m1")
        return before, after

    before, after = asyncio.run(scenario())
    assert before.last_polled_at is None
    assert after.last_polled_at == polled_at


def test_create_milestone_validates_type(db_path):
    async def scenario():
        async with Repository(db_path) as repo:
            created = await repo.create_milestone("Big day", "VOLUME", 1_000_000)
            with pytest.raises(MilestoneTypeInvalid):
                await repo.create_milestone("Bogus", "revenue", 10)
            return created, await repo.list_milestones()

    created, milestones = asyncio.run(scenario())
    assert created.type == "volume"
    assert created.triggered is False
    assert [m.name for m in milestones] == ["Big day"]


def test_update_milestone_validates_type_and_id(db_path):
    async def scenario():
        async with Repository(db_path) as repo:
            milestone = await repo.create_milestone("Hundred", "transactions", 100)
            with pytest.raises(MilestoneTypeInvalid):
                await repo.update_milestone(milestone.id, "Hundred", "nope", 100, True)
            with pytest.raises(MilestoneNotFound):
                await repo.update_milestone(999, "Ghost", "volume", 1, True)
            updated = await repo.update_milestone(milestone.id, "Two hundred", "transactions", 200, False)
        return updated

    updated = asyncio.run(scenario())
    assert updated.name == "Two hundred"
    assert updated.threshold == 200
    assert updated.enabled is False
