"""
Logging Module - Progress-Aware Logging System

Provides dynamic console handler management so log output does not fight
with the progress display. While progress is active, console INFO/DEBUG
is suppressed, warnings are buffered and errors are shown as Rich panels.
File logging is never affected.

Usage:
    from sf_connector.logging import LoggingManager

    manager = LoggingManager.get_instance()
    manager.setup(log_file, console_level)

    with manager.progress_mode():
        pass
"""

from sf_connector.logging.manager import LoggingManager, setup_logging
from sf_connector.logging.handlers import ProgressAwareConsoleHandler

__all__ = [
    'LoggingManager',
    'ProgressAwareConsoleHandler',
    'setup_logging',
]
