"""
Core Progress Tracking Components

Contains the tracker, operation context and event definitions.
"""

from sf_connector.progress.core.events import (
    EventType,
    ProgressEvent,
    ProgressSink,
    RecordingSink,
    CallbackSink,
)
from sf_connector.progress.core.tracker import (
    ProgressTracker,
    ProgressRenderer,
    ProgressMode,
    OperationContext,
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
]
