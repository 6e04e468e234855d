"""
Console handler that steps aside while a progress display owns the terminal.
"""

import logging
import sys
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from sf_connector.logging.manager import LoggingManager


class ProgressAwareConsoleHandler(logging.StreamHandler):
    """
    StreamHandler with a progress mode.

    In progress mode nothing is written to the stream: errors and warnings
    are handed to the logging manager (panel now, summary later) and
    everything below WARNING is dropped. The file handler still gets all
    records.
    """

    def __init__(self, stream=None, logging_manager: Optional['LoggingManager'] = None) -> None:
        super().__init__(stream or sys.stdout)
        self._logging_manager = logging_manager
        self.progress_mode = False

    def set_progress_mode(self, enabled: bool) -> None:
        self.progress_mode = enabled

    def emit(self, record: logging.LogRecord) -> None:
        if not self.progress_mode:
            super().emit(record)
            return
        if record.levelno < logging.WARNING:
            return
        try:
            if self._logging_manager is None:
                if record.levelno >= logging.ERROR:
                    sys.stderr.write(self.format(record) + "\n")
            elif record.levelno >= logging.ERROR:
                self._logging_manager.display_critical_error(record)
            else:
                self._logging_manager.buffer_warning(record)
        except Exception:
            self.handleError(record)
