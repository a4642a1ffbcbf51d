"""Normalizer - turns a raw POS snapshot into typed records."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..api import MerchantSnapshot
from ..db import SQLITE_INT_MAX, SQLITE_INT_MIN, ProductSnapshot, TransactionRecord
from ..errors import MalformedAmount, MalformedTimestamp

_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)


@dataclass
class NormalizedBatch:
    """Typed records for one merchant, ready to persist."""

    merchant_id: str
    transactions: list[TransactionRecord] = field(default_factory=list)
    products: list[ProductSnapshot] = field(default_factory=list)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp with optional fractional seconds.

    Fractions finer than a microsecond are truncated. An explicit
    offset (or Z) is required.
    """
    match = _RFC3339.match((value or "").strip())
    if not match:
        raise MalformedTimestamp(f"Invalid RFC 3339 timestamp: {value!r}")

    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    offset = match["offset"]
    if offset in ("Z", "z"):
        offset = "+00:00"

    try:
        return datetime.fromisoformat(
            f"{match['date']}T{match['time']}.{fraction}{offset}"
        )
    except ValueError as e:
        raise MalformedTimestamp(f"Invalid RFC 3339 timestamp: {value!r}") from e


def parse_sats(value: str) -> int:
    """
    Convert a decimal string to whole sats, rounding half away from zero.

    An empty string counts as zero.
    """
    value = (value or "").strip()
    if not value:
        return 0

    # Decimal() also takes digit-group underscores
    if "_" in value:
        raise MalformedAmount(f"Invalid amount: {value!r}")

    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise MalformedAmount(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise MalformedAmount(f"Invalid amount: {value!r}")

    # Check the exponent before building the int so "1e999999" stays cheap
    if amount.adjusted() > 18:
        raise MalformedAmount(f"Amount out of range: {value!r}")

    sats = int(amount.to_integral_value(rounding=ROUND_HALF_UP))
    if not SQLITE_INT_MIN <= sats <= SQLITE_INT_MAX:
        raise MalformedAmount(f"Amount out of range: {value!r}")
    return sats


def normalize_snapshot(snapshot: MerchantSnapshot) -> NormalizedBatch:
    """
    Normalize every sale and product of a snapshot.

    Any malformed record fails the whole batch so that a merchant is
    never persisted partially.

    Raises:
        MalformedTimestamp: a sale date cannot be parsed
        MalformedAmount: a sale amount or product revenue cannot be parsed
    """
    transactions = [
        TransactionRecord(
            sale_id=sale.sale_id,
            origin=sale.origin,
            sale_date=parse_timestamp(sale.sale_date),
            amount_sats=parse_sats(sale.total_cost_sats),
        )
        for sale in snapshot.sales
    ]

    products = [
        ProductSnapshot(
            product_id=product.product_id,
            name=product.name,
            currency=product.currency,
            price=product.price,
            total_transactions=product.total_transactions,
            total_revenue_sats=parse_sats(product.total_revenue_sats),
            active=product.active,
        )
        for product in snapshot.products
    ]

    return NormalizedBatch(
        merchant_id=snapshot.merchant_id,
        transactions=transactions,
        products=products,
    )
