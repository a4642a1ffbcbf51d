"""Database layer."""

from .models import SCHEMA
from .repository import (
    MILESTONE_TRANSACTIONS,
    MILESTONE_TYPES,
    MILESTONE_VOLUME,
    SQLITE_INT_MAX,
    SQLITE_INT_MIN,
    Merchant,
    Milestone,
    MilestoneTrigger,
    ProductSnapshot,
    Repository,
    Totals,
    TransactionRecord,
    UnitOfWork,
    from_db_time,
    to_db_time,
    utc_now,
    validate_milestone_type,
)

__all__ = [
    "SCHEMA",
    "Repository",
    "UnitOfWork",
    "Merchant",
    "TransactionRecord",
    "ProductSnapshot",
    "Milestone",
    "MilestoneTrigger",
    "Totals",
    "MILESTONE_TRANSACTIONS",
    "MILESTONE_VOLUME",
    "MILESTONE_TYPES",
    "SQLITE_INT_MIN",
    "SQLITE_INT_MAX",
    "validate_milestone_type",
    "from_db_time",
    "to_db_time",
    "utc_now",
]
