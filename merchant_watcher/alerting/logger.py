"""Milestone logging - formats and outputs milestone triggers to console and file."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ..db import MilestoneTrigger


class MilestoneFormatter(logging.Formatter):
    """Custom formatter for milestone messages."""

    MILESTONE_FORMAT = """
================================================================================
{timestamp} | MILESTONE | {name}
--------------------------------------------------------------------------------
  Type:         {type}
  Threshold:    {threshold:,}
  Transactions: {transactions:,}
  Volume:       {volume:,} sats
================================================================================
"""

    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, "trigger"):
            return self._format_trigger(record.trigger)
        return super().format(record)

    def _format_trigger(self, trigger: MilestoneTrigger) -> str:
        return self.MILESTONE_FORMAT.format(
            timestamp=trigger.triggered_at.strftime("%Y-%m-%d %H:%M:%S"),
            name=trigger.name,
            type=trigger.type.upper(),
            threshold=trigger.threshold,
            transactions=trigger.total_transactions,
            volume=trigger.total_volume_sats,
        )


class MilestoneLogger:
    """Handles milestone output to console and file."""

    def __init__(
        self,
        log_file: str | Path,
        log_level: str = "INFO",
        max_file_size_mb: int = 10,
        backup_count: int = 5,
    ):
        self.log_file = Path(log_file)
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.backup_count = backup_count

        self._logger = logging.getLogger("merchant_watcher.milestones.alerts")
        self._logger.propagate = False
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging handlers."""
        self._logger.setLevel(self.log_level)
        self._logger.handlers.clear()

        # Ensure log directory exists
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(MilestoneFormatter())
        self._logger.addHandler(console_handler)

        # File handler with rotation
        file_handler = RotatingFileHandler(
            self.log_file,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count,
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(MilestoneFormatter())
        self._logger.addHandler(file_handler)

    def log_trigger(self, trigger: MilestoneTrigger):
        """Log a milestone trigger to console and file."""
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=logging.WARNING,
            fn="",
            lno=0,
            msg="Milestone triggered",
            args=(),
            exc_info=None,
        )
        record.trigger = trigger
        self._logger.handle(record)

    async def on_trigger(self, trigger: MilestoneTrigger):
        """Poller callback."""
        self.log_trigger(trigger)

    def close(self):
        """Flush and detach handlers."""
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)


def setup_app_logging(level: str = "INFO"):
    """Set up application-wide logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
