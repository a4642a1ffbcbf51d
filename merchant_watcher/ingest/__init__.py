"""Ingestion pipeline: normalization and polling."""

from .normalizer import NormalizedBatch, normalize_snapshot, parse_sats, parse_timestamp
from .poller import CycleReport, MerchantPollResult, Poller

__all__ = [
    "Poller",
    "CycleReport",
    "MerchantPollResult",
    "NormalizedBatch",
    "normalize_snapshot",
    "parse_sats",
    "parse_timestamp",
]
