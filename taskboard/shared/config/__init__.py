"""
Configuration module: Settings and logging.
"""

from taskboard.shared.config.settings import Settings, get_settings, settings
from taskboard.shared.config.logging import get_logger, mask_email, setup_logging

__all__ = [
    # settings
    "Settings",
    "get_settings",
    "settings",
    # logging
    "get_logger",
    "mask_email",
    "setup_logging",
]
