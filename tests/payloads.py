"""Upstream POS API payload builders shared by the tests."""

import json

import httpx


def sale(sale_id: int, amount: str, date: str = "2026-10-19T12:00:00.123456789Z") -> dict:
    """An upstream sale entry."""
    return {
        "SaleId": sale_id,
        "SaleOrigin": "pos",
        "SaleDate": date,
        "TotalCostSats": amount,
    }


def product(product_id: int, name: str, transactions: int, revenue: str, active: bool = True) -> dict:
    """An upstream product entry."""
    return {
        "productid": product_id,
        "name": name,
        "currency": "SAT",
        "price": "1000",
        "total_transactions": transactions,
        "total_revenue_sats": revenue,
        "activestatus": active,
    }


def envelope(sales: list[dict] | None = None, products: list[dict] | None = None) -> dict:
    return {"data": {"products": products or [], "sales": sales or []}}


def json_response(body: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/json"},
    )


def merchant_id_from(request: httpx.Request) -> str:
    """Extract {merchantId} from /user-pos/{merchantId}."""
    return request.url.path.rstrip("/").split("/")[-1]
