"""Configuration loader for Merchant Watcher."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .db import MILESTONE_TYPES
from .errors import ConfigurationError


@dataclass
class PollerConfig:
    base_url: str = "https://api.paywithflash.com"
    interval_seconds: float = 30
    concurrency: int = 5
    http_timeout_seconds: float = 10


@dataclass
class DashboardConfig:
    ticker_limit: int = 20
    rate_window_minutes: float = 5
    leaderboard_limit: int = 10


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "logs/milestones.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass
class DatabaseConfig:
    path: str = "data/merchant_watcher.db"


@dataclass
class MerchantSeed:
    """A merchant to register at startup."""

    id: str
    public_key: str
    alias: str
    enabled: bool = True


@dataclass
class MilestoneSeed:
    """A milestone to create at startup if none with this name exists."""

    name: str
    type: str
    threshold: int
    enabled: bool = True


@dataclass
class Config:
    poller: PollerConfig = field(default_factory=PollerConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    merchants: list[MerchantSeed] = field(default_factory=list)
    milestones: list[MilestoneSeed] = field(default_factory=list)

    def validate(self):
        """Ensure runtime knobs are usable."""
        if not self.poller.base_url:
            raise ConfigurationError("poller.base_url must be set")
        if self.poller.interval_seconds <= 0:
            raise ConfigurationError("poller.interval_seconds must be > 0")
        if self.poller.concurrency <= 0:
            raise ConfigurationError("poller.concurrency must be > 0")
        if self.poller.http_timeout_seconds <= 0:
            raise ConfigurationError("poller.http_timeout_seconds must be > 0")
        if self.dashboard.ticker_limit <= 0:
            raise ConfigurationError("dashboard.ticker_limit must be > 0")
        if self.dashboard.leaderboard_limit <= 0:
            raise ConfigurationError("dashboard.leaderboard_limit must be > 0")
        for milestone in self.milestones:
            if milestone.type.lower() not in MILESTONE_TYPES:
                raise ConfigurationError(
                    f"Milestone {milestone.name!r} has invalid type {milestone.type!r}"
                )


def _section(raw: dict, name: str, cls):
    values = raw.get(name) or {}
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' section: {e}") from e


def _seeds(raw: dict, name: str, cls) -> list:
    try:
        return [cls(**item) for item in raw.get(name) or []]
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' entry: {e}") from e


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    config = Config(
        poller=_section(raw, "poller", PollerConfig),
        dashboard=_section(raw, "dashboard", DashboardConfig),
        logging=_section(raw, "logging", LoggingConfig),
        database=_section(raw, "database", DatabaseConfig),
        merchants=_seeds(raw, "merchants", MerchantSeed),
        milestones=_seeds(raw, "milestones", MilestoneSeed),
    )
    config.validate()
    return config
