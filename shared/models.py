from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None) -> np.ndarray:
    """Return a read-only, C-contiguous float64 copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=np.float64, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Link boundary
# ----------------------------

@dataclass(frozen=True)
class PeripheralInfo:
    """A discovered EMG sensor, as reported by the wireless-link layer."""

    id: int
    name: str
    rssi: int = 0


# ----------------------------
# Streaming data models
# ----------------------------

@dataclass(frozen=True)
class Frame:
    """Decoded samples of one inbound notification."""

    samples: np.ndarray
    seq: int
    received_at: float

    def __post_init__(self) -> None:
        if self.seq < 0:
            raise ValueError("seq must be non-negative")
        object.__setattr__(self, "samples", _freeze_array(self.samples, ndim=1))

    @property
    def n_samples(self) -> int:
        return int(self.samples.shape[0])


@dataclass(frozen=True)
class StageEmission:
    """One value produced by a cascade stage."""

    stage: str
    index: int
    value: float


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Immutable view of everything the display layer may read.

    Published by the ingest worker as a whole; readers never see a partially
    updated history.
    """

    seq: int
    raw: np.ndarray
    stages: Mapping[str, np.ndarray]
    latest: Mapping[str, float]
    received: int = 0
    processed: int = 0
    dropped: int = 0
    samples: int = 0
    recording: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", _freeze_array(self.raw, ndim=1))
        object.__setattr__(
            self,
            "stages",
            {name: _freeze_array(values, ndim=1) for name, values in self.stages.items()},
        )
        object.__setattr__(self, "latest", {name: float(v) for name, v in self.latest.items()})

    @classmethod
    def empty(cls, stage_names: Sequence[str]) -> "MetricsSnapshot":
        blank = np.zeros(0, dtype=np.float64)
        return cls(
            seq=-1,
            raw=blank,
            stages={name: blank for name in stage_names},
            latest={name: 0.0 for name in stage_names},
        )

    def history(self, name: str) -> np.ndarray:
        return self.stages[name]


@dataclass(frozen=True)
class ExportDataset:
    """Tabular recording export: a header row plus one row per recorded sample."""

    columns: Tuple[str, ...]
    rows: Tuple[Tuple[float, ...], ...] = field(repr=False)
    duration_sec: Optional[float] = None

    def __post_init__(self) -> None:
        columns = tuple(str(c) for c in self.columns)
        if not columns:
            raise ValueError("columns must not be empty")
        rows = tuple(tuple(float(v) for v in row) for row in self.rows)
        for row in rows:
            if len(row) != len(columns):
                raise ValueError("row width does not match column count")
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "rows", rows)

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    def column(self, name: str) -> Tuple[float, ...]:
        idx = self.columns.index(name)
        return tuple(row[idx] for row in self.rows)


def _restore_end_of_stream() -> "_EndOfStreamSentinel":
    return EndOfStream


class _EndOfStreamSentinel:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EndOfStream"

    def __reduce__(self):
        return (_restore_end_of_stream, ())


EndOfStream = _EndOfStreamSentinel()


__all__ = [
    "PeripheralInfo",
    "Frame",
    "StageEmission",
    "MetricsSnapshot",
    "ExportDataset",
    "EndOfStream",
]
