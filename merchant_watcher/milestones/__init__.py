"""Milestone evaluation."""

from .evaluator import (
    MilestoneEvaluator,
    MilestoneRule,
    TransactionCountRule,
    VolumeRule,
)

__all__ = [
    "MilestoneEvaluator",
    "MilestoneRule",
    "TransactionCountRule",
    "VolumeRule",
]
