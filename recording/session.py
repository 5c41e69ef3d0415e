"""Recording session: captures raw samples, stage values and timestamps while active."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from shared.errors import NotRecordingError
from shared.models import ExportDataset
from shared.settings import TIME_COLUMN

logger = logging.getLogger(__name__)


class RecordingSession:
    """
    Idle/Active state machine owned by one pipeline.

    All sequences are index-aligned to the raw samples: every `record()` call
    appends exactly one value to each of them under a single lock, so `stop()`
    running on another thread either includes a row completely or not at all.
    Stages that have not emitted since `start()` are recorded as 0.0.
    """

    def __init__(
        self,
        stage_names: Sequence[str],
        *,
        raw_column: str = "EMG",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._stage_names = tuple(stage_names)
        self._raw_column = raw_column
        self._clock = clock
        self._lock = threading.Lock()
        self._active = False
        self._start_time = 0.0
        self._raw: List[float] = []
        self._timestamps: List[float] = []
        self._derived: Dict[str, List[float]] = {name: [] for name in self._stage_names}
        self._latest: Dict[str, float] = {name: 0.0 for name in self._stage_names}

    @property
    def stage_names(self) -> tuple[str, ...]:
        return self._stage_names

    @property
    def columns(self) -> tuple[str, ...]:
        return (TIME_COLUMN, self._raw_column, *self._stage_names)

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._raw)

    def start(self) -> None:
        with self._lock:
            if self._active:
                logger.warning("Recording restarted; discarding %d unsaved rows", len(self._raw))
            self._reset_locked()
            self._start_time = self._clock()
            self._active = True
        logger.info("Recording started")

    def observe(self, stage: str, value: float) -> None:
        """Update the latest value of `stage`; later rows carry it until it changes."""
        with self._lock:
            if self._active and stage in self._latest:
                self._latest[stage] = float(value)

    def record(self, sample: float, stage_values: Optional[Mapping[str, float]] = None) -> bool:
        """Append one row. Returns False (and records nothing) while idle."""
        with self._lock:
            if not self._active:
                return False
            elapsed = self._clock() - self._start_time
            if stage_values:
                for name, value in stage_values.items():
                    if name in self._latest:
                        self._latest[name] = float(value)
            self._raw.append(float(sample))
            self._timestamps.append(elapsed)
            for name in self._stage_names:
                self._derived[name].append(self._latest[name])
            return True

    def stop(self) -> ExportDataset:
        """Finalize the session into an ExportDataset and return to Idle."""
        with self._lock:
            if not self._active:
                raise NotRecordingError("stop() called while no recording is active")
            try:
                dataset = self._build_dataset_locked()
            finally:
                self._reset_locked()
                self._active = False
        logger.info(
            "Recording stopped: %d rows (%.2f sec)",
            dataset.n_rows,
            dataset.duration_sec or 0.0,
        )
        return dataset

    def _build_dataset_locked(self) -> ExportDataset:
        rows = []
        for idx, sample in enumerate(self._raw):
            row = [self._timestamps[idx], sample]
            for name in self._stage_names:
                derived = self._derived[name]
                row.append(derived[idx] if idx < len(derived) else 0.0)
            rows.append(tuple(row))
        return ExportDataset(
            columns=self.columns,
            rows=tuple(rows),
            duration_sec=self._clock() - self._start_time,
        )

    def _reset_locked(self) -> None:
        self._raw = []
        self._timestamps = []
        self._derived = {name: [] for name in self._stage_names}
        self._latest = {name: 0.0 for name in self._stage_names}
        self._start_time = 0.0


__all__ = ["RecordingSession", "TIME_COLUMN"]
