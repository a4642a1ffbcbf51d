"""Milestone alert output and application logging."""

from .logger import MilestoneFormatter, MilestoneLogger, setup_app_logging

__all__ = ["MilestoneFormatter", "MilestoneLogger", "setup_app_logging"]
