"""
tqdm Progress Renderer

Fallback progress display using tqdm for broader compatibility.
"""

import sys
from threading import RLock
from typing import Dict, Optional, TextIO

from tqdm import tqdm

from sf_connector.progress.core.events import EventType, ProgressEvent
from sf_connector.progress.core.tracker import ProgressRenderer


class TqdmProgressRenderer(ProgressRenderer):
    """
    tqdm-based progress renderer.

    One bar per operation, advanced to the percentage carried by each event.
    """

    def __init__(self, file: Optional[TextIO] = None, disable_on_non_tty: bool = True):
        """
        Initialize tqdm progress renderer.

        Args:
            file: Output stream (defaults to stderr)
            disable_on_non_tty: Disable progress when not in TTY environment
        """
        self.file = file or sys.stderr
        self.disable_on_non_tty = disable_on_non_tty
        self._lock = RLock()
        self._progress_bars: Dict[str, tqdm] = {}
        self._is_started = False

    def is_available(self) -> bool:
        return True

    def start(self):
        with self._lock:
            self._is_started = True

    def stop(self):
        with self._lock:
            if not self._is_started:
                return
            for pbar in self._progress_bars.values():
                pbar.close()
            self._progress_bars.clear()
            self._is_started = False

    def on_event(self, event: ProgressEvent) -> None:
        if not self._is_started:
            return

        with self._lock:
            operation = event.operation or "operation"
            pbar = self._progress_bars.get(operation)
            if pbar is None:
                disable_progress = (
                    self.disable_on_non_tty and hasattr(self.file, 'isatty') and not self.file.isatty()
                )
                pbar = tqdm(
                    desc=operation.replace('_', ' ').title(),
                    total=100,
                    file=self.file,
                    disable=disable_progress,
                    ascii=True,
                    unit='%',
                    dynamic_ncols=True,
                    position=len(self._progress_bars)
                )
                self._progress_bars[operation] = pbar

            diff = event.percentage - pbar.n
            if diff > 0:
                pbar.update(diff)

            entity = event.entity_type or event.entity_name
            pbar.set_postfix_str(f"{event.type.value} {entity}" if entity else event.type.value)

            if event.type == EventType.DOWNLOAD_ERROR:
                tqdm.write(f"✗ Error in {entity}: {event.payload}", file=self.file)
            elif event.type == EventType.ABORT:
                tqdm.write("⊙ Operation aborted", file=self.file)
