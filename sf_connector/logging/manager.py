"""
Logging Manager

Owns the root logger handlers of the connector CLI: a DEBUG log file and a
console handler that goes quiet while a progress display is live.
Warnings raised meanwhile are replayed as one panel when the display
stops; errors are shown right away.
"""

import logging
import sys
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Deque, Iterator, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from sf_connector.logging.handlers import ProgressAwareConsoleHandler

logger = logging.getLogger(__name__)

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
MAX_BUFFERED_WARNINGS = 50


def _short_name(record: logging.LogRecord) -> str:
    return record.name.replace('sf_connector.', '', 1)


class LoggingManager:
    """
    Process-wide logging setup with a reference-counted progress mode.

    Nested ``enable_progress_mode`` calls (one per live renderer) keep the
    console quiet until the last matching ``disable_progress_mode``.
    """

    _instance: Optional['LoggingManager'] = None
    _instance_lock = RLock()

    def __init__(self) -> None:
        self._lock = RLock()
        self._file_handler: Optional[logging.FileHandler] = None
        self._console_handler: Optional[ProgressAwareConsoleHandler] = None
        self._replaced_handlers: List[logging.Handler] = []
        self._depth = 0
        self._warnings: Deque[str] = deque(maxlen=MAX_BUFFERED_WARNINGS)
        self._console: Optional[Console] = None
        self._error_console: Optional[Console] = None

    @classmethod
    def get_instance(cls) -> 'LoggingManager':
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def setup(self, log_file: Path, console_level: int = logging.WARNING) -> None:
        """
        Replace the root handlers with the log file and the console handler.

        Args:
            log_file: Log file (parent folders are created)
            console_level: Console threshold; the file always gets DEBUG
        """
        with self._lock:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file_handler = logging.FileHandler(log_file, encoding='utf-8')
            self._file_handler.setLevel(logging.DEBUG)
            self._file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

            console_format = '%(levelname)s - %(message)s' if console_level >= logging.INFO else '%(message)s'
            self._console_handler = ProgressAwareConsoleHandler(stream=sys.stdout, logging_manager=self)
            self._console_handler.setLevel(console_level)
            self._console_handler.setFormatter(logging.Formatter(console_format))

            root = logging.getLogger()
            root.setLevel(logging.DEBUG)
            self._replaced_handlers = list(root.handlers)
            for handler in self._replaced_handlers:
                root.removeHandler(handler)
            root.addHandler(self._file_handler)
            root.addHandler(self._console_handler)
        logger.debug(f"Logging to {log_file} (console level {logging.getLevelName(console_level)})")

    # ------------------------------------------------------------------
    # Progress mode
    # ------------------------------------------------------------------

    def enable_progress_mode(self) -> None:
        with self._lock:
            self._depth += 1
            if self._depth > 1:
                return
            self._warnings.clear()
            if self._console_handler is not None:
                self._console_handler.set_progress_mode(True)

    def disable_progress_mode(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth > 0:
                return
            if self._console_handler is not None:
                self._console_handler.set_progress_mode(False)
            self._flush_warnings()

    @contextmanager
    def progress_mode(self) -> Iterator[None]:
        self.enable_progress_mode()
        try:
            yield
        finally:
            self.disable_progress_mode()

    def is_progress_mode_active(self) -> bool:
        with self._lock:
            return self._depth > 0

    # ------------------------------------------------------------------
    # Diverted records
    # ------------------------------------------------------------------

    @property
    def buffered_warnings(self) -> List[str]:
        with self._lock:
            return list(self._warnings)

    def buffer_warning(self, record: logging.LogRecord) -> None:
        """Keep a warning for the summary shown when progress mode ends."""
        with self._lock:
            self._warnings.append(record.getMessage())

    def display_critical_error(self, record: logging.LogRecord) -> None:
        """Show an error as a red panel on stderr while the display is live."""
        if self._error_console is None:
            self._error_console = Console(stderr=True)
        body = Text()
        body.append(record.getMessage(), style="red")
        body.append(f"\n{_short_name(record)}.{record.funcName}() line {record.lineno}", style="dim")
        self._error_console.print(Panel(body, title="Error", title_align="left", border_style="red", expand=False))

    def _flush_warnings(self) -> None:
        if not self._warnings:
            return
        if self._console is None:
            self._console = Console()
        count = len(self._warnings)
        body = Text("\n".join(f"• {message}" for message in self._warnings), style="yellow")
        self._warnings.clear()
        self._console.print(Panel(body, title=f"{count} warning(s) during the operation",
                                  title_align="left", border_style="yellow", expand=False))

    def cleanup(self) -> None:
        """Put the replaced root handlers back and close the log file."""
        with self._lock:
            self._depth = 0
            self._flush_warnings()
            root = logging.getLogger()
            for handler in (self._file_handler, self._console_handler):
                if handler is not None and handler in root.handlers:
                    root.removeHandler(handler)
            for handler in self._replaced_handlers:
                root.addHandler(handler)
            self._replaced_handlers = []
            if self._file_handler is not None:
                self._file_handler.close()
                self._file_handler = None
            self._console_handler = None


def setup_logging(log_file: Path, console_level: int = logging.WARNING) -> LoggingManager:
    """Configure the shared LoggingManager and return it."""
    manager = LoggingManager.get_instance()
    manager.setup(log_file, console_level)
    return manager
