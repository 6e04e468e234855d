"""
Core Progress Tracker Module

Per-connector operation state (percentage, increment, abort flag), the
single-flight guard and event dispatch to progress sinks and renderers.
"""

import logging
from abc import abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Set, TYPE_CHECKING

from sf_connector.exceptions import OperationNotAllowedError
from sf_connector.metadata.catalog import compute_increment
from sf_connector.progress.core.events import EventType, ProgressEvent, ProgressSink

if TYPE_CHECKING:
    from sf_connector.logging import LoggingManager

logger = logging.getLogger(__name__)


class ProgressMode(Enum):
    """Progress display modes."""
    AUTO = "auto"      # Automatically choose best renderer
    ON = "on"          # Force progress display (prefer rich)
    OFF = "off"        # Disable progress display


class ProgressRenderer(ProgressSink):
    """Progress sink that draws on the terminal between start() and stop()."""

    @abstractmethod
    def start(self) -> None:
        """Start the progress display."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the progress display."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this renderer is available in the current environment."""
        pass

    def display_completion_summary(self, stats: Dict[str, Any]) -> None:
        """Display completion summary. Default no-op."""
        return


@dataclass
class OperationContext:
    """
    Progress state of one operation.

    ``allow_concurrence`` is only set for pollable operations (status
    reports), which may run while a primary operation is open.
    """
    name: str = ""
    percentage: float = 0.0
    increment: float = 0.0
    in_progress: bool = False
    abort: bool = False
    allow_concurrence: bool = False

    @property
    def aborted(self) -> bool:
        return self.abort


class ProgressTracker:
    """
    Operation guard and progress dispatcher for one connector instance.

    Only one primary operation may be open at a time. Sinks receive events
    in emission order; a sink that keeps failing is disabled.
    """

    def __init__(
        self,
        mode: ProgressMode = ProgressMode.OFF,
        logging_manager: Optional["LoggingManager"] = None,
    ) -> None:
        self.mode = mode
        self._lock = RLock()
        self._context = OperationContext()
        self._abort_emitted = False
        self._sinks: List[ProgressSink] = []
        self._sink_errors: Dict[int, int] = {}
        self._disabled_sinks: Set[int] = set()
        self._renderer: Optional[ProgressRenderer] = None
        self._is_started = False

        # Logging integration (set by main.py after instantiation)
        self._logging_manager = logging_manager
        self._logging_mode_active = False

    # ------------------------------------------------------------------
    # Sinks and rendering
    # ------------------------------------------------------------------

    def add_sink(self, sink: ProgressSink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)
                self._sink_errors[id(sink)] = 0
                self._disabled_sinks.discard(id(sink))

    def remove_sink(self, sink: ProgressSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)
            self._sink_errors.pop(id(sink), None)
            self._disabled_sinks.discard(id(sink))

    def set_logging_manager(self, logging_manager: "LoggingManager") -> None:
        self._logging_manager = logging_manager

    def set_renderer(self, renderer: Optional[ProgressRenderer]) -> None:
        """Set the progress renderer (also registered as a sink)."""
        with self._lock:
            if self._renderer is not None:
                self.remove_sink(self._renderer)
            self._renderer = renderer
            if renderer is not None:
                self.add_sink(renderer)

    def start(self) -> None:
        """Start progress display."""
        with self._lock:
            if self._is_started:
                return

            if self._logging_manager and self.mode != ProgressMode.OFF:
                try:
                    self._logging_manager.enable_progress_mode()
                    self._logging_mode_active = True
                    logger.debug("Enabled progress mode in logging manager")
                except Exception as e:
                    logger.warning(f"Failed to enable logging progress mode: {e}")

            if not self._renderer and self.mode != ProgressMode.OFF:
                self.set_renderer(self._auto_select_renderer())

            if self._renderer and self.mode != ProgressMode.OFF:
                try:
                    self._renderer.start()
                    logger.debug(f"Started progress renderer: {type(self._renderer).__name__}")
                except Exception as e:
                    logger.warning(f"Failed to start progress renderer: {e}")
                    self.set_renderer(None)

            self._is_started = True

    def stop(self) -> None:
        """Stop progress display."""
        with self._lock:
            if not self._is_started:
                return

            if self._renderer:
                try:
                    self._renderer.stop()
                    logger.debug(f"Stopped progress renderer: {type(self._renderer).__name__}")
                except Exception as e:
                    logger.warning(f"Error stopping progress renderer: {e}")

            if self._logging_manager and self._logging_mode_active:
                try:
                    self._logging_manager.disable_progress_mode()
                    self._logging_mode_active = False
                    logger.debug("Disabled progress mode in logging manager")
                except Exception as e:
                    logger.warning(f"Failed to disable logging progress mode: {e}")

            self._is_started = False

    def _auto_select_renderer(self) -> Optional[ProgressRenderer]:
        try:
            from sf_connector.progress.config import auto_select_renderer

            renderer = auto_select_renderer()
            if renderer:
                logger.debug(f"Auto-selected renderer: {type(renderer).__name__}")
            else:
                logger.warning("No suitable progress renderer available")
            return renderer
        except Exception as e:
            logger.error(f"Failed to auto-select renderer: {e}")
            return None

    def display_completion_summary(self, stats: Dict[str, Any]) -> None:
        """Display operation summary via renderer when available."""
        if self._renderer and self._is_started and self.mode != ProgressMode.OFF:
            try:
                self._renderer.display_completion_summary(stats)
            except Exception as e:
                logger.warning(f"Failed to display completion summary: {e}")

    # ------------------------------------------------------------------
    # Operation lifecycle
    # ------------------------------------------------------------------

    @property
    def context(self) -> OperationContext:
        """Snapshot of the primary operation state."""
        with self._lock:
            return replace(self._context)

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._context.in_progress

    @property
    def is_aborted(self) -> bool:
        with self._lock:
            return self._context.abort

    def start_operation(self, name: str, pollable: bool = False) -> OperationContext:
        """
        Open an operation.

        Primary operations reset progress and the abort flag. Pollable
        operations get their own context and never block or get blocked.

        Raises:
            OperationNotAllowedError: If a primary operation is already open
        """
        if pollable:
            logger.debug(f"Starting pollable operation: {name}")
            return OperationContext(name=name, in_progress=True, allow_concurrence=True)

        with self._lock:
            if self._context.in_progress and not self._context.allow_concurrence:
                raise OperationNotAllowedError(
                    f"Cannot start '{name}': operation '{self._context.name}' is still in progress"
                )
            self._context = OperationContext(name=name, in_progress=True)
            self._abort_emitted = False
            logger.debug(f"Starting operation: {name}")
            return self._context

    def end_operation(self, context: OperationContext) -> None:
        """Close an operation opened with ``start_operation``."""
        with self._lock:
            context.in_progress = False
            if context is self._context:
                logger.debug(f"Finished operation: {context.name}")

    @contextmanager
    def operation(self, name: str, pollable: bool = False) -> Iterator[OperationContext]:
        """
        Bracket a public operation.

        Usage:
            with tracker.operation("describe_sobjects") as ctx:
                ...
        """
        context = self.start_operation(name, pollable=pollable)
        try:
            yield context
        finally:
            self.end_operation(context)

    def set_units(self, count: int, context: Optional[OperationContext] = None) -> float:
        """Reset percentage and compute the per-unit increment."""
        with self._lock:
            ctx = context or self._context
            ctx.percentage = 0.0
            ctx.increment = compute_increment(count)
            return ctx.increment

    def advance(self, context: Optional[OperationContext] = None) -> float:
        """Add one unit increment to the percentage (capped at 100)."""
        with self._lock:
            ctx = context or self._context
            ctx.percentage = min(100.0, round(ctx.percentage + ctx.increment, 2))
            return ctx.percentage

    def abort(self) -> bool:
        """
        Flag the current operation as aborted and emit ABORT once.

        Returns:
            True if the ABORT event was emitted by this call
        """
        with self._lock:
            self._context.abort = True
            if self._abort_emitted:
                return False
            self._abort_emitted = True
        logger.warning(f"Abort requested for operation: {self._context.name or 'none'}")
        self.emit(EventType.ABORT)
        return True

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def emit(
        self,
        event_type: EventType,
        entity_name: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_item: Optional[str] = None,
        payload: Any = None,
        context: Optional[OperationContext] = None,
    ) -> ProgressEvent:
        """Build an event from the operation state and deliver it to every sink."""
        from sf_connector.progress.config import get_config
        config = get_config()

        with self._lock:
            ctx = context or self._context
            event = ProgressEvent(
                type=event_type,
                increment=ctx.increment,
                percentage=ctx.percentage,
                operation=ctx.name,
                entity_name=entity_name,
                entity_type=entity_type,
                entity_item=entity_item,
                payload=payload,
            )
            sinks = [s for s in self._sinks if id(s) not in self._disabled_sinks]

        # Call sinks without holding lock
        for sink in sinks:
            try:
                sink.on_event(event)
                with self._lock:
                    self._sink_errors[id(sink)] = 0
            except Exception as e:
                with self._lock:
                    errors = self._sink_errors.get(id(sink), 0) + 1
                    self._sink_errors[id(sink)] = errors
                    if config.log_sink_errors:
                        logger.warning(
                            f"Progress sink {type(sink).__name__} failed on {event_type.value}: {e}. "
                            f"Error count: {errors}"
                        )
                    if errors >= config.max_sink_errors:
                        logger.error(
                            f"Disabling progress sink {type(sink).__name__} due to too many errors ({errors})"
                        )
                        self._disabled_sinks.add(id(sink))
        return event

    def __enter__(self):
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.stop()
