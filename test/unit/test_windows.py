"""
Unit tests for the windowed RMS stages and the cascade.

Count-triggered stages are checked against hand-computed values; the
time-triggered stage is driven by a ManualClock so interval boundaries are
exact.
"""
from __future__ import annotations

import math

import numpy as np
import pytest

from core.windows import CountWindow, IntervalMaxWindow, RmsCascade, build_window, rms
from shared.errors import ConfigurationError
from shared.settings import StageConfig
from test.fixtures.reference_models import ManualClock


class TestRms:
    def test_constant_without_centering_is_abs_value(self):
        assert rms([-0.5] * 8) == pytest.approx(0.5)

    def test_constant_with_centering_is_zero(self):
        assert rms([0.1] * 10, center=True) == pytest.approx(0.0, abs=1e-12)

    def test_known_values(self):
        assert rms([3.0, 4.0]) == pytest.approx(math.sqrt(12.5))

    def test_centering_removes_offset(self):
        assert rms([9.0, 11.0], center=True) == pytest.approx(1.0)

    def test_empty_is_zero(self):
        assert rms([]) == 0.0

    def test_nan_is_coerced_to_zero(self):
        assert rms([float("nan"), 1.0]) == 0.0
        assert rms([float("inf"), 1.0], center=True) == 0.0

    def test_accepts_numpy_input(self):
        assert rms(np.ones(16, dtype=np.float32) * 2) == pytest.approx(2.0)


class TestCountWindowTumbling:
    def test_two_windows_emit_one_then_two(self):
        window = CountWindow(StageConfig("s1", window_size=4, center=False, advance="tumbling"))
        outputs = [window.push(v) for v in [1, 1, 1, 1, 2, 2, 2, 2]]
        emitted = [out for out in outputs if out is not None]
        assert emitted == [pytest.approx(1.0), pytest.approx(2.0)]
        assert outputs[3] is not None and outputs[7] is not None
        assert window.emitted == 2

    def test_buffer_is_empty_after_emission(self):
        window = CountWindow(StageConfig("s1", window_size=3))
        for v in (1.0, 2.0, 3.0):
            window.push(v)
        assert len(window) == 0
        window.push(4.0)
        assert len(window) == 1

    def test_k_windows_emit_k_outputs(self):
        window = CountWindow(StageConfig("s1", window_size=5))
        outputs = [window.push(float(i)) for i in range(5 * 7)]
        assert sum(out is not None for out in outputs) == 7


class TestCountWindowSliding:
    def test_emits_every_input_once_full(self):
        window = CountWindow(StageConfig("s1", window_size=3, advance="sliding"))
        outputs = [window.push(v) for v in [1.0, 2.0, 3.0, 4.0, 5.0]]
        assert outputs[:2] == [None, None]
        assert outputs[2] == pytest.approx(rms([1.0, 2.0, 3.0]))
        assert outputs[3] == pytest.approx(rms([2.0, 3.0, 4.0]))
        assert outputs[4] == pytest.approx(rms([3.0, 4.0, 5.0]))
        assert len(window) == 3

    def test_centered_sliding(self):
        window = CountWindow(StageConfig("s1", window_size=2, advance="sliding", center=True))
        window.push(0.0)
        assert window.push(2.0) == pytest.approx(1.0)
        assert window.push(2.0) == pytest.approx(0.0)


class TestCountWindowOptions:
    def test_smoothing_blends_with_previous_output(self):
        window = CountWindow(StageConfig("s1", window_size=1, alpha=0.2))
        assert window.push(1.0) == pytest.approx(1.0)
        assert window.push(0.0) == pytest.approx(0.8)
        assert window.push(0.0) == pytest.approx(0.64)

    def test_max_statistic(self):
        window = CountWindow(StageConfig("s1", window_size=3, advance="sliding", statistic="max"))
        outputs = [window.push(v) for v in [0.2, 0.9, 0.1, 0.3, 0.4]]
        assert outputs[2:] == [0.9, 0.9, 0.4]

    def test_reset_clears_buffer_and_latest(self):
        window = CountWindow(StageConfig("s1", window_size=2))
        window.push(1.0)
        window.push(1.0)
        window.push(5.0)
        window.reset()
        assert len(window) == 0
        assert window.latest == 0.0
        assert window.emitted == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window_size": 0},
            {"window_size": -3},
            {"advance": "hopping"},
            {"statistic": "median"},
            {"alpha": 0.0},
            {"alpha": 1.5},
        ],
    )
    def test_invalid_configuration_fails_at_construction(self, kwargs):
        with pytest.raises(ConfigurationError):
            CountWindow(StageConfig("bad", **kwargs))

    def test_rejects_interval_config(self):
        with pytest.raises(ConfigurationError):
            CountWindow(StageConfig("bad", trigger="interval"))


class TestIntervalMaxWindow:
    def _window(self, clock, interval=1.0):
        return IntervalMaxWindow(StageConfig("max", trigger="interval", interval_sec=interval), clock)

    def test_emits_running_max_after_interval(self):
        clock = ManualClock()
        window = self._window(clock)
        assert window.push(0.5) is None
        clock.advance(0.4)
        assert window.push(0.8) is None
        assert window.push(0.3) is None
        clock.advance(0.6)
        assert window.poll() == pytest.approx(0.8)
        assert window.running_max is None

    def test_push_at_boundary_includes_value(self):
        clock = ManualClock()
        window = self._window(clock)
        window.push(0.1)
        clock.advance(1.0)
        assert window.push(0.7) == pytest.approx(0.7)

    def test_empty_interval_emits_nothing_and_restarts(self):
        clock = ManualClock()
        window = self._window(clock)
        clock.advance(1.5)
        assert window.poll() is None
        window.push(0.2)
        clock.advance(0.75)
        assert window.poll() is None
        clock.advance(0.25)
        assert window.poll() == pytest.approx(0.2)

    def test_count_does_not_trigger(self):
        clock = ManualClock()
        window = self._window(clock)
        for i in range(1000):
            assert window.push(float(i)) is None

    @pytest.mark.parametrize("interval", [0.0, -1.0])
    def test_non_positive_interval_rejected(self, interval):
        with pytest.raises(ConfigurationError):
            self._window(ManualClock(), interval=interval)

    def test_build_window_dispatches_on_trigger(self):
        clock = ManualClock()
        assert isinstance(build_window(StageConfig("a"), clock), CountWindow)
        assert isinstance(build_window(StageConfig("b", trigger="interval"), clock), IntervalMaxWindow)


class TestRmsCascade:
    def test_stage_two_receives_one_input_per_stage_one_emission(self):
        cascade = RmsCascade(
            [StageConfig("A", window_size=2), StageConfig("B", window_size=2)],
            clock=ManualClock(),
        )
        emissions = [cascade.push(1.0) for _ in range(4)]
        assert [len(e) for e in emissions] == [0, 1, 0, 2]
        last = emissions[-1]
        assert [em.stage for em in last] == ["A", "B"]
        assert [em.index for em in last] == [1, 0]
        assert last[1].value == pytest.approx(1.0)

    def test_downstream_of_sliding_stage(self):
        cascade = RmsCascade(
            [
                StageConfig("Short", window_size=2, advance="sliding"),
                StageConfig("Long", window_size=3),
            ],
            clock=ManualClock(),
        )
        for _ in range(4):
            cascade.push(0.5)
        latest = cascade.latest()
        assert latest["Short"] == pytest.approx(0.5)
        assert latest["Long"] == pytest.approx(0.5)
        assert cascade.windows[1].emitted == 1

    def test_poll_fires_interval_stage(self):
        clock = ManualClock()
        cascade = RmsCascade(
            [StageConfig("Short", window_size=1), StageConfig("Max", trigger="interval")],
            clock=clock,
        )
        cascade.push(0.25)
        cascade.push(-0.75)
        assert cascade.poll() == []
        clock.advance(1.0)
        emissions = cascade.poll()
        assert [(em.stage, em.value) for em in emissions] == [("Max", pytest.approx(0.75))]

    def test_reset(self):
        cascade = RmsCascade([StageConfig("A", window_size=1)], clock=ManualClock())
        cascade.push(3.0)
        cascade.reset()
        assert cascade.latest() == {"A": 0.0}

    def test_names_preserve_order(self):
        cascade = RmsCascade(
            [StageConfig("z"), StageConfig("a"), StageConfig("m", trigger="interval")],
            clock=ManualClock(),
        )
        assert cascade.names == ("z", "a", "m")

    def test_empty_cascade_rejected(self):
        with pytest.raises(ConfigurationError):
            RmsCascade([])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError):
            RmsCascade([StageConfig("A"), StageConfig("A")])
