"""Configuration module for the dairy back office."""

from dairy_ledger.config.logging import configure_logging, get_logger
from dairy_ledger.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging", "get_logger"]
