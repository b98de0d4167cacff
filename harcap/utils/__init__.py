"""
harcap utilities: settings and logging.
"""

from harcap.utils.config import RunOptions, Settings, get_settings
from harcap.utils.logging import LogContext, configure_logging, get_logger, new_run_id

__all__ = [
    "LogContext",
    "RunOptions",
    "Settings",
    "configure_logging",
    "get_logger",
    "get_settings",
    "new_run_id",
]
