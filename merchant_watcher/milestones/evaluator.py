"""Milestone evaluator - moves milestones from pending to triggered exactly once."""

import logging
from datetime import datetime
from typing import Protocol

from ..db import (
    MILESTONE_TRANSACTIONS,
    MILESTONE_VOLUME,
    Milestone,
    MilestoneTrigger,
    Repository,
    Totals,
    utc_now,
)

logger = logging.getLogger(__name__)


class MilestoneRule(Protocol):
    """Protocol for milestone predicates."""

    MILESTONE_TYPE: str

    def reached(self, milestone: Milestone, totals: Totals) -> bool:
        """Return True once the totals satisfy the milestone."""
        ...


class TransactionCountRule:
    """Fires when the global transaction count reaches the threshold."""

    MILESTONE_TYPE = MILESTONE_TRANSACTIONS

    def reached(self, milestone: Milestone, totals: Totals) -> bool:
        return totals.transactions >= milestone.threshold


class VolumeRule:
    """Fires when the global sats volume reaches the threshold."""

    MILESTONE_TYPE = MILESTONE_VOLUME

    def reached(self, milestone: Milestone, totals: Totals) -> bool:
        return totals.volume_sats >= milestone.threshold


class MilestoneEvaluator:
    """
    Checks pending milestones against global totals.

    Totals, candidate selection, the guarded pending -> triggered update
    and the trigger log append all happen in one unit of work. A milestone
    another evaluation already claimed is skipped, so concurrent runs never
    trigger it twice.
    """

    def __init__(
        self,
        repository: Repository,
        rules: list[MilestoneRule] | None = None,
    ):
        self.repository = repository
        self.rules: dict[str, MilestoneRule] = {}
        for rule in rules or [TransactionCountRule(), VolumeRule()]:
            self.add_rule(rule)
        self._evaluations = 0
        self._trigger_count = 0

    def add_rule(self, rule: MilestoneRule):
        """Register a predicate for a milestone type."""
        self.rules[rule.MILESTONE_TYPE] = rule
        logger.debug(f"Added milestone rule: {rule.MILESTONE_TYPE}")

    async def evaluate(self, now: datetime | None = None) -> list[MilestoneTrigger]:
        """
        Trigger every enabled pending milestone whose threshold is reached.

        Returns:
            Triggers created by this evaluation (may be empty)
        """
        now = now or utc_now()
        self._evaluations += 1
        triggers: list[MilestoneTrigger] = []

        async with self.repository.unit_of_work() as uow:
            totals = await uow.current_totals()
            for milestone in await uow.pending_milestones():
                rule = self.rules.get(milestone.type)
                if rule is None:
                    logger.warning(
                        f"Skipping milestone {milestone.id} with unknown type {milestone.type!r}"
                    )
                    continue

                if not rule.reached(milestone, totals):
                    continue

                if not await uow.claim_milestone(milestone.id, now):
                    continue

                triggers.append(await uow.append_trigger(milestone, now, totals))

        for trigger in triggers:
            logger.info(
                f"Milestone triggered: {trigger.name} ({trigger.type} >= {trigger.threshold:,}) "
                f"at {trigger.total_transactions:,} transactions / "
                f"{trigger.total_volume_sats:,} sats"
            )
        self._trigger_count += len(triggers)
        return triggers

    @property
    def stats(self) -> dict:
        """Get evaluator statistics."""
        return {
            "evaluations": self._evaluations,
            "milestones_triggered": self._trigger_count,
            "rules_active": len(self.rules),
        }
