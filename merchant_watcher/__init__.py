"""Merchant Watcher - ingests merchant POS sales and tracks milestones."""

__version__ = "0.1.0"
