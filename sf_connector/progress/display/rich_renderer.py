"""
Rich Progress Renderer

Displays connector progress with the Rich library: one progress bar for
the running operation and a table of the most recent events.
"""

import logging
import time
from collections import deque
from threading import RLock
from typing import Any, Deque, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    Progress, TaskID, BarColumn, TextColumn,
    TimeElapsedColumn, SpinnerColumn
)
from rich.table import Table
from rich.text import Text

from sf_connector.progress.core.events import EventType, ProgressEvent
from sf_connector.progress.core.tracker import ProgressRenderer

logger = logging.getLogger(__name__)

EVENT_STYLES = {
    EventType.DOWNLOAD_ERROR: "red",
    EventType.ABORT: "bold red",
    EventType.AFTER_DOWNLOAD_TYPE: "green",
    EventType.AFTER_DOWNLOAD_OBJECT: "green",
    EventType.COPY_FILE: "cyan",
    EventType.COMPRESS_FILE: "cyan",
}


def describe_event(event: ProgressEvent) -> str:
    """Short human-readable label of an event's entity."""
    parts = [p for p in (event.entity_type, event.entity_name, event.entity_item) if p]
    return ":".join(parts)


class RichProgressRenderer(ProgressRenderer):
    """Rich-based progress renderer."""

    def __init__(self, console: Optional[Console] = None) -> None:
        """
        Initialize Rich progress renderer.

        Args:
            console: Optional Rich console instance
        """
        from sf_connector.progress.config import get_config

        self.console = console or Console()
        self._lock = RLock()
        self._live: Optional[Live] = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.console
        )
        self._tasks: Dict[str, TaskID] = {}
        self._recent: Deque[ProgressEvent] = deque(maxlen=get_config().max_recent_events)
        self._error_count = 0
        self._start_time = time.time()

    def is_available(self) -> bool:
        return True

    def start(self) -> None:
        """Start the Rich progress display."""
        from sf_connector.progress.config import get_config

        with self._lock:
            if self._live is not None:
                return
            self._start_time = time.time()
            self._live = Live(
                self._create_layout(),
                console=self.console,
                refresh_per_second=get_config().rich_refresh_rate,
                transient=False
            )
            self._live.start()

    def stop(self) -> None:
        """Stop the Rich progress display."""
        with self._lock:
            if self._live is not None:
                self._live.update(self._create_layout())
                self._live.stop()
                self._live = None

    def on_event(self, event: ProgressEvent) -> None:
        with self._lock:
            operation = event.operation or "operation"
            if operation not in self._tasks:
                self._tasks[operation] = self._progress.add_task(
                    description=operation.replace('_', ' ').title(), total=100
                )
            label = describe_event(event)
            description = f"{operation.replace('_', ' ').title()}: {event.type.value}"
            if label:
                description += f" [dim]{label}[/dim]"
            self._progress.update(
                self._tasks[operation],
                completed=event.percentage,
                description=description
            )
            if event.type == EventType.DOWNLOAD_ERROR:
                self._error_count += 1
            self._recent.append(event)

            if self._live:
                try:
                    self._live.update(self._create_layout())
                except Exception as e:
                    logger.warning(f"Failed to update Rich display: {e}")

    def _create_layout(self) -> Table:
        progress_panel = Panel(
            self._progress,
            title="Salesforce Connector",
            border_style="blue",
            padding=(1, 2)
        )

        events_table = Table(show_header=True, header_style="bold")
        events_table.add_column("Event", style="cyan", no_wrap=True)
        events_table.add_column("Entity")
        events_table.add_column("Progress", style="blue", justify="right")
        for event in self._recent:
            style = EVENT_STYLES.get(event.type, "white")
            events_table.add_row(
                f"[{style}]{event.type.value}[/{style}]",
                describe_event(event) or "—",
                f"{event.percentage:.1f}%"
            )

        stats = Text(f"Elapsed: {time.time() - self._start_time:.1f}s")
        if self._error_count:
            stats.append(f" | {self._error_count} error(s)", style="red")

        main_table = Table.grid(padding=1)
        main_table.add_column()
        main_table.add_row(progress_panel)
        main_table.add_row(Panel(events_table, title="Recent Events", border_style="dim", padding=(0, 1)))
        main_table.add_row(Panel(stats, title="Summary", border_style="green", padding=(0, 1)))
        return main_table

    def display_completion_summary(self, stats: Dict[str, Any]) -> None:
        """Display operation completion summary panel."""
        with self._lock:
            try:
                summary_table = Table.grid(padding=(0, 2))
                summary_table.add_column(style="cyan bold")
                summary_table.add_column()
                for key, value in stats.items():
                    summary_table.add_row(f"{key.replace('_', ' ').capitalize()}:", f"{value}")

                panel = Panel(
                    summary_table,
                    title=Text("✓ OPERATION COMPLETE", style="bold green"),
                    border_style="green",
                    padding=(1, 2),
                )
                self.console.print()
                self.console.print(panel)
                self.console.print()
            except Exception as e:
                logger.warning(f"Failed to display Rich completion summary: {e}")
