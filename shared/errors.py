from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import ExportDataset


class EmgStreamError(Exception):
    """Base class for every error raised by the streaming core."""


class ConfigurationError(EmgStreamError, ValueError):
    """Invalid pipeline, stage, decoder or buffer configuration."""


class MalformedFrameError(EmgStreamError, ValueError):
    """Inbound frame cannot be split into 16-bit samples."""

    def __init__(self, length: int) -> None:
        super().__init__(f"frame length {length} is not a multiple of 2")
        self.length = length


class NotRecordingError(EmgStreamError, RuntimeError):
    """stop() was called on a session that is not recording."""


class ExportIOError(EmgStreamError, OSError):
    """
    The serialized dataset could not be persisted.

    The dataset stays attached so the caller can retry or route it elsewhere.
    """

    def __init__(self, message: str, dataset: "ExportDataset") -> None:
        super().__init__(message)
        self.dataset = dataset


__all__ = [
    "EmgStreamError",
    "ConfigurationError",
    "MalformedFrameError",
    "NotRecordingError",
    "ExportIOError",
]
