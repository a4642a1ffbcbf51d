"""Client for the merchant POS API - fetches cumulative sales and product stats."""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from ..db import SQLITE_INT_MAX, SQLITE_INT_MIN
from ..errors import MalformedPayload, UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class RawSale:
    """A sale exactly as reported upstream."""

    sale_id: int
    origin: str
    sale_date: str  # RFC 3339 with fractional seconds
    total_cost_sats: str  # decimal string


@dataclass
class RawProduct:
    """Cumulative product stats exactly as reported upstream."""

    product_id: int
    name: str
    currency: str
    price: str
    total_transactions: int
    total_revenue_sats: str  # decimal string
    active: bool


@dataclass
class MerchantSnapshot:
    """Everything the POS API returned for one merchant at fetch time."""

    merchant_id: str
    sales: list[RawSale] = field(default_factory=list)
    products: list[RawProduct] = field(default_factory=list)


def _as_int(value, field_name: str) -> int:
    if value is None:
        return 0
    # bool is an int subclass; floats and strings are not integers upstream
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedPayload(f"{field_name} must be an integer, got {value!r}")
    if not SQLITE_INT_MIN <= value <= SQLITE_INT_MAX:
        raise MalformedPayload(f"{field_name} out of range: {value!r}")
    return value


def _as_bool(value, field_name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise MalformedPayload(f"{field_name} must be a boolean, got {value!r}")
    return value


def _as_str(value) -> str:
    return "" if value is None else str(value)


def parse_snapshot(merchant_id: str, payload) -> MerchantSnapshot:
    """Decode the `{"data": {"products": [...], "sales": [...]}}` envelope."""
    if not isinstance(payload, dict):
        raise MalformedPayload("Response body is not a JSON object")

    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedPayload("'data' is not a JSON object")

    sales = []
    for item in data.get("sales") or []:
        if not isinstance(item, dict):
            raise MalformedPayload(f"Sale entry is not an object: {item!r}")
        sales.append(
            RawSale(
                sale_id=_as_int(item.get("SaleId"), "SaleId"),
                origin=_as_str(item.get("SaleOrigin")),
                sale_date=_as_str(item.get("SaleDate")),
                total_cost_sats=_as_str(item.get("TotalCostSats")),
            )
        )

    products = []
    for item in data.get("products") or []:
        if not isinstance(item, dict):
            raise MalformedPayload(f"Product entry is not an object: {item!r}")
        products.append(
            RawProduct(
                product_id=_as_int(item.get("productid"), "productid"),
                name=_as_str(item.get("name")),
                currency=_as_str(item.get("currency")),
                price=_as_str(item.get("price")),
                total_transactions=_as_int(
                    item.get("total_transactions"), "total_transactions"
                ),
                total_revenue_sats=_as_str(item.get("total_revenue_sats")),
                active=_as_bool(item.get("activestatus"), "activestatus"),
            )
        )

    return MerchantSnapshot(merchant_id=merchant_id, sales=sales, products=products)


class PosApiClient:
    """Client for the upstream merchant POS API."""

    def __init__(
        self,
        base_url: str = "https://api.paywithflash.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def fetch_snapshot(self, merchant_id: str, public_key: str) -> MerchantSnapshot:
        """
        Fetch the current sales and product stats for a merchant.

        The whole request, body included, is bounded by the client timeout.

        Args:
            merchant_id: Upstream merchant id
            public_key: The merchant's public key credential

        Returns:
            MerchantSnapshot with raw sales and products

        Raises:
            UpstreamUnavailable: on timeout, transport error or non-2xx status
            MalformedPayload: when the body is not the expected envelope
        """
        try:
            response = await asyncio.wait_for(
                self._client.get(
                    f"{self.base_url}/user-pos/{merchant_id}",
                    params={"user_public_key": public_key},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Request for merchant {merchant_id} timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request for merchant {merchant_id} failed: {e}") from e

        if not response.is_success:
            raise UpstreamUnavailable(
                f"Upstream responded {response.status_code} for merchant {merchant_id}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"Upstream returned an undecodable body for merchant {merchant_id}"
            ) from e

        snapshot = parse_snapshot(merchant_id, payload)
        logger.debug(
            f"Fetched merchant {merchant_id}: {len(snapshot.sales)} sales, "
            f"{len(snapshot.products)} products"
        )
        return snapshot
