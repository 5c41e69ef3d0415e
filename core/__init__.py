"""Core streaming pipeline: decode, aggregate, dispatch."""

from .decoder import SampleDecoder
from .dispatcher import DispatcherStats, IngestDispatcher, TickCallback
from .pipeline import EmgPipeline
from .windows import CountWindow, IntervalMaxWindow, RmsCascade, rms
from shared.models import EndOfStream, ExportDataset, Frame, MetricsSnapshot, PeripheralInfo, StageEmission

__all__ = [
    "Frame",
    "EndOfStream",
    "ExportDataset",
    "MetricsSnapshot",
    "PeripheralInfo",
    "StageEmission",
    "SampleDecoder",
    "CountWindow",
    "IntervalMaxWindow",
    "RmsCascade",
    "rms",
    "DispatcherStats",
    "IngestDispatcher",
    "TickCallback",
    "EmgPipeline",
]
