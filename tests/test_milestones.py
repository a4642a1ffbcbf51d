"""Tests for exactly-once milestone evaluation."""

import asyncio
from datetime import datetime, timedelta, timezone

from merchant_watcher.db import Repository, TransactionRecord
from merchant_watcher.milestones import MilestoneEvaluator

SALE_DATE = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def sale(sale_id: int, amount: int) -> TransactionRecord:
    return TransactionRecord(sale_id=sale_id, origin="pos", sale_date=SALE_DATE, amount_sats=amount)


def test_volume_milestone_triggers_once(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            milestone = await repo.create_milestone("Volume 500", "volume", 500)
            evaluator = MilestoneEvaluator(repo)

            await repo.record_transactions("m1", [sale(1, 250), sale(2, 300)])
            first = await evaluator.evaluate()

            await repo.record_transactions("m1", [sale(3, 1000)])
            second = await evaluator.evaluate()

            log = await repo.list_milestone_triggers(datetime(2000, 1, 1, tzinfo=timezone.utc))
            stored = await repo.get_milestone(milestone.id)
        return first, second, log, stored

    first, second, log, stored = asyncio.run(scenario())

    assert len(first) == 1
    assert first[0].total_volume_sats == 550
    assert first[0].total_transactions == 2
    assert first[0].name == "Volume 500"
    assert second == []
    assert len(log) == 1
    assert log[0].total_volume_sats == 550
    assert stored.triggered
    assert stored.triggered_at == log[0].triggered_at


def test_pending_milestone_stays_pending_until_reached(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("Three sales", "transactions", 3)
            evaluator = MilestoneEvaluator(repo)

            await repo.record_transactions("m1", [sale(1, 10), sale(2, 10)])
            before = await evaluator.evaluate()
            await repo.record_transactions("m1", [sale(3, 10)])
            after = await evaluator.evaluate()
        return before, after

    before, after = asyncio.run(scenario())
    assert before == []
    assert len(after) == 1
    assert after[0].total_transactions == 3


def test_disabled_milestone_never_triggers(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("Off", "transactions", 1, enabled=False)
            await repo.record_transactions("m1", [sale(1, 10)])
            return await MilestoneEvaluator(repo).evaluate()

    assert asyncio.run(scenario()) == []


def test_several_milestones_trigger_independently(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("One sale", "transactions", 1)
            await repo.create_milestone("100 sats", "volume", 100)
            await repo.create_milestone("Far away", "volume", 10_000)
            await repo.record_transactions("m1", [sale(1, 150)])
            return await MilestoneEvaluator(repo).evaluate()

    triggers = asyncio.run(scenario())
    assert sorted(t.name for t in triggers) == ["100 sats", "One sale"]


def test_concurrent_evaluations_trigger_once(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("Volume 500", "volume", 500)
            await repo.record_transactions("m1", [sale(1, 600)])

            evaluators = [MilestoneEvaluator(repo) for _ in range(5)]
            results = await asyncio.gather(*(e.evaluate() for e in evaluators))
            log = await repo.list_milestone_triggers(datetime(2000, 1, 1, tzinfo=timezone.utc))
        return results, log

    results, log = asyncio.run(scenario())
    assert sum(len(r) for r in results) == 1
    assert len(log) == 1


def test_claim_is_guarded(db_path):
    async def scenario():
        async with Repository(db_path) as repo:
            milestone = await repo.create_milestone("Once", "transactions", 0)
            async with repo.unit_of_work() as uow:
                first = await uow.claim_milestone(milestone.id, SALE_DATE)
                second = await uow.claim_milestone(milestone.id, SALE_DATE)
        return first, second

    assert asyncio.run(scenario()) == (True, False)


def test_reset_rearms_milestone(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            milestone = await repo.create_milestone("Two sales", "transactions", 2)
            evaluator = MilestoneEvaluator(repo)
            await repo.record_transactions("m1", [sale(1, 10), sale(2, 10)])
            await evaluator.evaluate()

            await repo.update_milestone(
                milestone.id, "Two sales", "transactions", 2, True, reset=True
            )
            again = await evaluator.evaluate()
            log = await repo.list_milestone_triggers(datetime(2000, 1, 1, tzinfo=timezone.utc))
        return again, log

    again, log = asyncio.run(scenario())
    assert len(again) == 1
    assert len(log) == 2


def test_trigger_log_filters_by_since(db_path, make_merchant):
    early = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    late = early + timedelta(hours=3)

    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("First", "transactions", 1)
            await repo.create_milestone("Second", "transactions", 2)
            evaluator = MilestoneEvaluator(repo)

            await repo.record_transactions("m1", [sale(1, 10)])
            await evaluator.evaluate(now=early)
            await repo.record_transactions("m1", [sale(2, 10)])
            await evaluator.evaluate(now=late)

            recent = await repo.list_milestone_triggers(late - timedelta(minutes=1))
            everything = await repo.list_milestone_triggers(early)
        return recent, everything

    recent, everything = asyncio.run(scenario())
    assert [t.name for t in recent] == ["Second"]
    assert [t.name for t in everything] == ["Second", "First"]


def test_evaluator_stats(db_path, make_merchant):
    async def scenario():
        async with Repository(db_path) as repo:
            await repo.upsert_merchant(make_merchant("m1"))
            await repo.create_milestone("One sale", "transactions", 1)
            evaluator = MilestoneEvaluator(repo)
            await evaluator.evaluate()
            await repo.record_transactions("m1", [sale(1, 10)])
            await evaluator.evaluate()
            return evaluator.stats

    stats = asyncio.run(scenario())
    assert stats["evaluations"] == 2
    assert stats["milestones_triggered"] == 1
    assert stats["rules_active"] == 2
