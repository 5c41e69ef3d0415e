"""
Shared data structures available to both the streaming core and its consumers.
"""

from .errors import ConfigurationError, EmgStreamError, ExportIOError, MalformedFrameError, NotRecordingError
from .history_buffer import HistoryBuffer
from .settings import DecoderConfig, PipelineConfig, PipelineSettingsStore, StageConfig

__all__ = [
    "ConfigurationError",
    "DecoderConfig",
    "EmgStreamError",
    "ExportIOError",
    "HistoryBuffer",
    "MalformedFrameError",
    "NotRecordingError",
    "PipelineConfig",
    "PipelineSettingsStore",
    "StageConfig",
]
