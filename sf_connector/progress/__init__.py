"""
Progress Tracking Module

Operation guard, progress events and terminal renderers for the connector.
Supports multiple display modes (rich, tqdm, off).
"""

from sf_connector.progress.core import (
    EventType,
    ProgressEvent,
    ProgressSink,
    RecordingSink,
    CallbackSink,
    ProgressTracker,
    ProgressRenderer,
    ProgressMode,
    OperationContext,
)
from sf_connector.progress.display import RichProgressRenderer, TqdmProgressRenderer
from sf_connector.progress.config import (
    ProgressConfig,
    get_config,
    configure,
    register_renderer,
    auto_select_renderer,
    create_progress_tracker,
    setup_progress_tracker,
)

__all__ = [
    'EventType',
    'ProgressEvent',
    'ProgressSink',
    'RecordingSink',
    'CallbackSink',
    'ProgressTracker',
    'ProgressRenderer',
    'ProgressMode',
    'OperationContext',
    'RichProgressRenderer',
    'TqdmProgressRenderer',
    'ProgressConfig',
    'get_config',
    'configure',
    'register_renderer',
    'auto_select_renderer',
    'create_progress_tracker',
    'setup_progress_tracker',
]
