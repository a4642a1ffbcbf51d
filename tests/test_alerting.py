"""Tests for milestone alert output."""

import asyncio
import logging
from datetime import datetime, timezone

from merchant_watcher.alerting import MilestoneFormatter, MilestoneLogger
from merchant_watcher.db import MilestoneTrigger


def make_trigger() -> MilestoneTrigger:
    return MilestoneTrigger(
        id=1,
        milestone_id=7,
        name="One million sats",
        type="volume",
        threshold=1_000_000,
        triggered_at=datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc),
        total_transactions=4321,
        total_volume_sats=1_000_250,
    )


def test_formatter_renders_trigger_banner():
    record = logging.LogRecord("alerts", logging.WARNING, "", 0, "Milestone triggered", (), None)
    record.trigger = make_trigger()

    text = MilestoneFormatter().format(record)

    assert "2026-10-19 12:30:00 | MILESTONE | One million sats" in text
    assert "Type:         VOLUME" in text
    assert "Threshold:    1,000,000" in text
    assert "Transactions: 4,321" in text
    assert "Volume:       1,000,250 sats" in text


def test_formatter_falls_back_for_plain_records():
    record = logging.LogRecord("alerts", logging.INFO, "", 0, "hello %s", ("there",), None)
    assert MilestoneFormatter().format(record) == "hello there"


def test_logger_writes_trigger_to_file(tmp_path, capsys):
    log_file = tmp_path / "logs" / "milestones.log"
    alerts = MilestoneLogger(log_file)
    try:
        asyncio.run(alerts.on_trigger(make_trigger()))
    finally:
        alerts.close()

    assert "MILESTONE | One million sats" in log_file.read_text()
    assert "MILESTONE | One million sats" in capsys.readouterr().out
