"""Upstream POS API client."""

from .pos_api import (
    MerchantSnapshot,
    PosApiClient,
    RawProduct,
    RawSale,
    parse_snapshot,
)

__all__ = [
    "PosApiClient",
    "MerchantSnapshot",
    "RawSale",
    "RawProduct",
    "parse_snapshot",
]
