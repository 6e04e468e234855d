"""
Progress Configuration Module

Display settings, the renderer registry and the tracker factories used by
the entry point.
"""

import logging
from dataclasses import dataclass, fields
from threading import RLock
from typing import List, Optional, Tuple, Type

from .core.tracker import ProgressMode, ProgressRenderer, ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class ProgressConfig:
    """Settings shared by the tracker and the renderers."""

    rich_refresh_rate: int = 4  # Hz
    max_recent_events: int = 8  # lines listed under the Rich bars
    max_sink_errors: int = 5  # a sink is dropped after this many failures
    log_sink_errors: bool = True


_config = ProgressConfig()
_config_lock = RLock()


def get_config() -> ProgressConfig:
    with _config_lock:
        return _config


def configure(**overrides) -> ProgressConfig:
    """
    Change settings of the shared configuration.

    Raises:
        ValueError: For a name that is not a ProgressConfig field
    """
    known = {f.name for f in fields(ProgressConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown progress setting(s): {', '.join(unknown)}")
    with _config_lock:
        for name, value in overrides.items():
            setattr(_config, name, value)
        return _config


# Renderers in priority order; the first available one wins
_renderers: List[Tuple[str, Type[ProgressRenderer]]] = []
_renderers_lock = RLock()


def register_renderer(name: str, renderer_class: Type[ProgressRenderer]) -> None:
    with _renderers_lock:
        _renderers[:] = [(n, c) for n, c in _renderers if n != name]
        _renderers.append((name, renderer_class))
    logger.debug(f"Registered renderer: {name}")


def auto_select_renderer() -> Optional[ProgressRenderer]:
    """Instantiate the first registered renderer whose terminal support is available."""
    with _renderers_lock:
        candidates = list(_renderers)

    for name, renderer_class in candidates:
        try:
            renderer = renderer_class()
        except Exception as e:
            logger.debug(f"Renderer {name} could not be created: {e}")
            continue
        if renderer.is_available():
            return renderer
        logger.debug(f"Renderer {name} not available")
    return None


def create_progress_tracker(mode: str = "auto") -> ProgressTracker:
    """Tracker for a ``--progress`` value; unknown values fall back to auto."""
    try:
        progress_mode = ProgressMode(mode.lower())
    except ValueError:
        logger.warning(f"Invalid progress mode '{mode}', using 'auto'")
        progress_mode = ProgressMode.AUTO
    return ProgressTracker(mode=progress_mode)


def setup_progress_tracker(mode: str = "auto", renderer: Optional[ProgressRenderer] = None) -> ProgressTracker:
    """
    Tracker with a renderer attached up front.

    Args:
        mode: ``auto``, ``on`` or ``off``
        renderer: Renderer to use instead of the registry's choice
                  (ignored when the mode is off)
    """
    tracker = create_progress_tracker(mode)
    if tracker.mode == ProgressMode.OFF:
        return tracker

    renderer = renderer or auto_select_renderer()
    if renderer is not None:
        tracker.set_renderer(renderer)
        logger.debug(f"Progress tracker uses {type(renderer).__name__}")
    return tracker


def _register_default_renderers() -> None:
    from .display.rich_renderer import RichProgressRenderer
    from .display.tqdm_renderer import TqdmProgressRenderer

    register_renderer('rich', RichProgressRenderer)
    register_renderer('tqdm', TqdmProgressRenderer)


_register_default_renderers()
