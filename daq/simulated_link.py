# daq/simulated_link.py
"""
Stand-in for the wireless EMG sensor: produces notification payloads the way
the real link layer delivers them, for demos and tests.

The signal is a baseline near mid-scale with bursts of band-limited noise
("contractions"). Samples are packed as little-endian uint16, 12-bit range.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import numpy as np

from shared.models import PeripheralInfo

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes], None]

ADC_MAX = 4095
ADC_MID = 2048


def encode_samples(raw: np.ndarray) -> bytes:
    """Pack integer ADC counts as little-endian uint16 wire bytes."""
    counts = np.clip(np.rint(np.asarray(raw, dtype=np.float64)), 0, 0xFFFF)
    return counts.astype("<u2").tobytes()


class SimulatedEmgLink:
    """
    Emits fixed-size frames at the nominal sensor rate on a background thread.

    `on_frame` receives each payload exactly as a notification handler would.
    `on_connected` / `on_disconnected` mirror the link lifecycle signals.
    """

    def __init__(
        self,
        on_frame: FrameCallback,
        *,
        sample_rate: float = 1000.0,
        samples_per_frame: int = 10,
        burst_period_sec: float = 2.0,
        burst_amplitude: float = 600.0,
        noise_amplitude: float = 20.0,
        seed: Optional[int] = None,
        on_connected: Optional[Callable[[PeripheralInfo], None]] = None,
        on_disconnected: Optional[Callable[[], None]] = None,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if samples_per_frame <= 0:
            raise ValueError("samples_per_frame must be positive")
        self._on_frame = on_frame
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self.sample_rate = float(sample_rate)
        self.samples_per_frame = int(samples_per_frame)
        self._burst_period = float(burst_period_sec)
        self._burst_amplitude = float(burst_amplitude)
        self._noise_amplitude = float(noise_amplitude)
        self._rng = np.random.default_rng(seed)
        self._sample_counter = 0
        self._frames_sent = 0
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self.peripheral = PeripheralInfo(id=0, name="Simulated EMG", rssi=-50)

    @classmethod
    def list_available_peripherals(cls) -> List[PeripheralInfo]:
        return [PeripheralInfo(id=0, name="Simulated EMG", rssi=-50)]

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    def next_payload(self) -> bytes:
        """Generate the next frame synchronously."""
        n = self.samples_per_frame
        idx = self._sample_counter + np.arange(n)
        t = idx / self.sample_rate
        self._sample_counter += n

        phase = np.mod(t, self._burst_period) / self._burst_period
        envelope = np.where(phase < 0.5, np.sin(np.pi * phase * 2.0), 0.0)
        burst = self._burst_amplitude * envelope * self._rng.standard_normal(n)
        noise = self._noise_amplitude * self._rng.standard_normal(n)
        raw = np.clip(ADC_MID + burst + noise, 0, ADC_MAX)
        return encode_samples(raw)

    def start(self) -> None:
        if self._worker and self._worker.is_alive():
            return
        self._stop_event.clear()
        if self._on_connected is not None:
            self._on_connected(self.peripheral)

        def _loop() -> None:
            frame_duration = self.samples_per_frame / self.sample_rate
            next_deadline = time.perf_counter()
            while not self._stop_event.is_set():
                self._on_frame(self.next_payload())
                self._frames_sent += 1
                # Pace to real time; sleep until the next frame is due.
                next_deadline += frame_duration
                time.sleep(max(0.0, next_deadline - time.perf_counter()))

        self._worker = threading.Thread(target=_loop, name="SimulatedEmgLink", daemon=True)
        self._worker.start()
        logger.info(
            "Simulated link started (%.0f Hz, %d samples/frame)",
            self.sample_rate,
            self.samples_per_frame,
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=1.0)
        self._worker = None
        if self._on_disconnected is not None:
            self._on_disconnected()
        logger.info("Simulated link stopped after %d frames", self._frames_sent)


__all__ = ["SimulatedEmgLink", "encode_samples", "FrameCallback", "ADC_MAX", "ADC_MID"]
