"""
Pytest fixtures for Merchant Watcher tests.

Each test gets its own SQLite file under tmp_path. Async code is driven with
asyncio.run inside the test so no async plugin is needed.
"""

from __future__ import annotations

import pytest

from merchant_watcher.db import Merchant


@pytest.fixture
def db_path(tmp_path):
    """Path to a fresh SQLite database for this test."""
    return tmp_path / "merchant_watcher.db"


@pytest.fixture
def make_merchant():
    """Factory for merchant configs."""

    def _make(merchant_id: str, alias: str | None = None, enabled: bool = True) -> Merchant:
        return Merchant(
            id=merchant_id,
            public_key=f"pk-{merchant_id}",
            alias=alias or f"Merchant {merchant_id}",
            enabled=enabled,
        )

    return _make
