"""Shared utilities and configuration."""

from macrocal.shared.config import Config, Settings
from macrocal.shared.utils import setup_logger, to_naive_utc, utc_now

__all__ = ["Config", "Settings", "setup_logger", "to_naive_utc", "utc_now"]
