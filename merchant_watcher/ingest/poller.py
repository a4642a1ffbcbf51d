"""Poller - fetches every enabled merchant with a bounded pool of workers."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from ..api import PosApiClient
from ..db import Merchant, MilestoneTrigger, Repository, utc_now
from ..errors import MerchantNotFound, WatcherError
from ..milestones import MilestoneEvaluator
from .normalizer import normalize_snapshot

logger = logging.getLogger(__name__)

TriggerCallback = Callable[[MilestoneTrigger], Awaitable[None]]


@dataclass
class MerchantPollResult:
    """Outcome of one fetch-normalize-persist unit of work."""

    merchant_id: str
    new_transactions: int = 0
    products: int = 0
    triggers: list[MilestoneTrigger] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    """Results of one poll cycle across all enabled merchants."""

    started_at: datetime
    results: list[MerchantPollResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [r.merchant_id for r in self.results if r.ok]

    @property
    def failures(self) -> dict[str, Exception]:
        return {r.merchant_id: r.error for r in self.results if r.error is not None}

    @property
    def new_transactions(self) -> int:
        return sum(r.new_transactions for r in self.results)

    @property
    def triggers(self) -> list[MilestoneTrigger]:
        return [t for r in self.results for t in r.triggers]


class Poller:
    """
    Polls the POS API for every enabled merchant.

    Each cycle pushes the enabled merchants onto a queue that a fixed
    number of worker tasks drain. A failing merchant is logged and
    reported but never stops the other workers or the cycle.
    """

    DEFAULT_INTERVAL = 60.0  # seconds
    DEFAULT_CONCURRENCY = 5

    def __init__(
        self,
        repository: Repository,
        api_client: PosApiClient,
        evaluator: MilestoneEvaluator | None = None,
        interval_seconds: float = DEFAULT_INTERVAL,
        concurrency: int = DEFAULT_CONCURRENCY,
        on_trigger: TriggerCallback | None = None,
    ):
        self.repository = repository
        self.api = api_client
        self.evaluator = evaluator or MilestoneEvaluator(repository)
        self.interval = interval_seconds if interval_seconds > 0 else self.DEFAULT_INTERVAL
        self.concurrency = concurrency if concurrency > 0 else self.DEFAULT_CONCURRENCY
        self.on_trigger = on_trigger
        self._running = False

        self._cycles = 0
        self._merchants_polled = 0
        self._failures = 0
        self._transactions_inserted = 0
        self._milestones_triggered = 0

    async def run(self):
        """Run poll cycles at a fixed rate until stopped or cancelled."""
        self._running = True
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        logger.info(
            f"Poller started (interval={self.interval:g}s, concurrency={self.concurrency})"
        )

        try:
            while self._running:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                if not self._running:
                    break

                try:
                    await self.run_poll_cycle()
                except Exception as e:
                    logger.error(f"Poll cycle failed: {e}", exc_info=True)

                # Skip ticks missed by a slow cycle instead of bursting
                next_tick += self.interval
                lag = loop.time() - next_tick
                if lag > 0:
                    next_tick += (lag // self.interval + 1) * self.interval
        finally:
            self._running = False
            logger.info("Poller stopped")

    def stop(self):
        """Stop after the current cycle."""
        self._running = False

    async def run_poll_cycle(self) -> CycleReport:
        """
        Poll every enabled merchant once.

        Errors listing merchants propagate; errors for a single merchant
        are captured in the report.
        """
        report = CycleReport(started_at=utc_now())
        merchants = await self.repository.list_merchants(only_enabled=True)
        self._cycles += 1
        if not merchants:
            logger.debug("No enabled merchants to poll")
            return report

        queue: asyncio.Queue[Merchant] = asyncio.Queue()
        for merchant in merchants:
            queue.put_nowait(merchant)

        async def worker():
            while True:
                try:
                    merchant = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                report.results.append(await self._poll_isolated(merchant))

        workers = min(self.concurrency, len(merchants))
        await asyncio.gather(*(worker() for _ in range(workers)))

        failures = report.failures
        for merchant_id, error in failures.items():
            logger.warning(f"Merchant {merchant_id} poll failed: {error}")

        logger.info(
            f"Poll cycle complete: {len(report.succeeded)}/{len(merchants)} merchants ok, "
            f"{report.new_transactions} new transactions, "
            f"{len(report.triggers)} milestones triggered"
        )
        return report

    async def refresh_merchant(self, merchant_id: str) -> MerchantPollResult:
        """
        Poll a single merchant outside the schedule.

        Raises:
            MerchantNotFound: if no merchant has this id
            WatcherError: any fetch, normalize or persistence error
        """
        merchant = await self.repository.get_merchant(merchant_id)
        if merchant is None:
            raise MerchantNotFound(f"Merchant {merchant_id} not found")
        return await self.poll_merchant(merchant)

    async def poll_merchant(self, merchant: Merchant) -> MerchantPollResult:
        """Fetch, normalize and persist one merchant, then evaluate milestones."""
        self._merchants_polled += 1

        # Network first; storage units only open once the payload is in hand
        snapshot = await self.api.fetch_snapshot(merchant.id, merchant.public_key)
        batch = normalize_snapshot(snapshot)

        inserted = await self.repository.record_transactions(merchant.id, batch.transactions)
        self._transactions_inserted += inserted
        await self.repository.upsert_products(merchant.id, batch.products)
        await self.repository.mark_polled(merchant.id, utc_now())

        triggers = await self.evaluator.evaluate()
        self._milestones_triggered += len(triggers)
        for trigger in triggers:
            await self._notify(trigger)

        logger.info(f"Merchant {merchant.id} poll complete (new_tx={inserted})")
        return MerchantPollResult(
            merchant_id=merchant.id,
            new_transactions=inserted,
            products=len(batch.products),
            triggers=triggers,
        )

    async def _poll_isolated(self, merchant: Merchant) -> MerchantPollResult:
        try:
            return await self.poll_merchant(merchant)
        except WatcherError as e:
            self._failures += 1
            return MerchantPollResult(merchant_id=merchant.id, error=e)
        except Exception as e:
            self._failures += 1
            logger.error(f"Unexpected error polling merchant {merchant.id}: {e}", exc_info=True)
            return MerchantPollResult(merchant_id=merchant.id, error=e)

    async def _notify(self, trigger: MilestoneTrigger):
        if not self.on_trigger:
            return
        try:
            await self.on_trigger(trigger)
        except Exception as e:
            logger.error(f"Error handling milestone trigger {trigger.id}: {e}", exc_info=True)

    @property
    def stats(self) -> dict:
        """Get poller statistics."""
        return {
            "cycles": self._cycles,
            "merchants_polled": self._merchants_polled,
            "failures": self._failures,
            "transactions_inserted": self._transactions_inserted,
            "milestones_triggered": self._milestones_triggered,
        }
