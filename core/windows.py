"""Windowed aggregation stages and the cascade that chains them.

Two trigger types live here:
- CountWindow: emits once its buffer condition is met (tumbling or sliding).
- IntervalMaxWindow: emits the running maximum once a wall-clock interval
  has elapsed, independent of how many inputs arrived.

RmsCascade feeds raw samples into stage 1 and every emission of stage k into
stage k+1.
"""
from __future__ import annotations

import logging
import math
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Sequence

import numpy as np

from shared.errors import ConfigurationError
from shared.models import StageEmission
from shared.settings import StageConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def rms(values: Sequence[float] | np.ndarray, *, center: bool = False) -> float:
    """Root-mean-square of `values`, optionally after removing their mean. NaN maps to 0."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    with np.errstate(all="ignore"):
        if center:
            arr = arr - arr.mean()
        result = float(np.sqrt(np.mean(arr * arr)))
    if math.isnan(result):
        return 0.0
    return result


class _Window:
    """Interface for stateful cascade stages."""

    def __init__(self, config: StageConfig) -> None:
        config.validate()
        self._config = config
        self._emitted = 0
        self._latest = 0.0

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StageConfig:
        return self._config

    @property
    def emitted(self) -> int:
        return self._emitted

    @property
    def latest(self) -> float:
        return self._latest

    def push(self, value: float) -> Optional[float]:
        raise NotImplementedError

    def poll(self) -> Optional[float]:
        return None

    def reset(self) -> None:
        self._emitted = 0
        self._latest = 0.0

    def _record(self, value: float) -> float:
        self._emitted += 1
        self._latest = value
        return value


class CountWindow(_Window):
    """Count-triggered stage computing RMS (or max) over its last N inputs."""

    def __init__(self, config: StageConfig) -> None:
        if config.trigger != "count":
            raise ConfigurationError(f"{config.name}: CountWindow requires trigger='count'")
        super().__init__(config)
        self._size = int(config.window_size)
        self._sliding = config.advance == "sliding"
        self._buffer: Deque[float] = deque(maxlen=self._size)

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, value: float) -> Optional[float]:
        self._buffer.append(float(value))
        if len(self._buffer) < self._size:
            return None
        if self._config.statistic == "max":
            out = max(self._buffer)
        else:
            out = rms(self._buffer, center=self._config.center)
        if not self._sliding:
            self._buffer.clear()
        alpha = self._config.alpha
        if alpha is not None and self._emitted:
            out = alpha * out + (1.0 - alpha) * self._latest
        return self._record(out)

    def reset(self) -> None:
        super().reset()
        self._buffer.clear()


class IntervalMaxWindow(_Window):
    """
    Time-triggered stage: tracks the maximum input and emits it each time
    `interval_sec` of wall-clock time has elapsed.

    An interval that saw no input emits nothing; the interval restarts either way.
    """

    def __init__(self, config: StageConfig, clock: Clock = time.monotonic) -> None:
        if config.trigger != "interval":
            raise ConfigurationError(f"{config.name}: IntervalMaxWindow requires trigger='interval'")
        super().__init__(config)
        self._clock = clock
        self._interval = float(config.interval_sec)
        self._started_at = clock()
        self._running_max: Optional[float] = None

    @property
    def running_max(self) -> Optional[float]:
        return self._running_max

    def push(self, value: float) -> Optional[float]:
        value = float(value)
        if self._running_max is None or value > self._running_max:
            self._running_max = value
        return self._check()

    def poll(self) -> Optional[float]:
        return self._check()

    def reset(self) -> None:
        super().reset()
        self._running_max = None
        self._started_at = self._clock()

    def _check(self) -> Optional[float]:
        now = self._clock()
        if now - self._started_at < self._interval:
            return None
        self._started_at = now
        peak, self._running_max = self._running_max, None
        if peak is None:
            return None
        return self._record(peak)


def build_window(config: StageConfig, clock: Clock = time.monotonic) -> _Window:
    if config.trigger == "interval":
        return IntervalMaxWindow(config, clock)
    return CountWindow(config)


class RmsCascade:
    """Fixed, ordered chain of stages; stage k+1 consumes each emission of stage k."""

    def __init__(self, stages: Sequence[StageConfig], *, clock: Clock = time.monotonic) -> None:
        if not stages:
            raise ConfigurationError("cascade requires at least one stage")
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ConfigurationError("stage names must be unique")
        self._windows: List[_Window] = [build_window(cfg, clock) for cfg in stages]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(window.name for window in self._windows)

    @property
    def windows(self) -> tuple[_Window, ...]:
        return tuple(self._windows)

    def latest(self) -> dict[str, float]:
        return {window.name: window.latest for window in self._windows}

    def push(self, sample: float) -> List[StageEmission]:
        """Feed one raw sample; return every emission it caused, upstream first."""
        return self._propagate(0, float(sample))

    def poll(self) -> List[StageEmission]:
        """Fire any time-triggered stage whose interval has elapsed."""
        emissions: List[StageEmission] = []
        for idx, window in enumerate(self._windows):
            out = window.poll()
            if out is None:
                continue
            emissions.append(self._emission(window, out))
            emissions.extend(self._propagate(idx + 1, out))
        return emissions

    def reset(self) -> None:
        for window in self._windows:
            window.reset()

    def _propagate(self, start: int, value: float) -> List[StageEmission]:
        emissions: List[StageEmission] = []
        for window in self._windows[start:]:
            out = window.push(value)
            if out is None:
                break
            emissions.append(self._emission(window, out))
            value = out
        return emissions

    @staticmethod
    def _emission(window: _Window, value: float) -> StageEmission:
        logger.debug("%s emitted %.6f (#%d)", window.name, value, window.emitted)
        return StageEmission(stage=window.name, index=window.emitted - 1, value=value)


__all__ = ["rms", "CountWindow", "IntervalMaxWindow", "RmsCascade", "build_window"]
