from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .dispatcher import IngestDispatcher, TickCallback
from recording.csv_export import dataset_to_csv, default_export_name, save_dataset
from recording.session import RecordingSession
from shared.errors import NotRecordingError
from shared.models import ExportDataset, MetricsSnapshot, PeripheralInfo
from shared.settings import PipelineConfig, PipelineSettingsStore


class EmgPipeline:
    """
    Owner of one device's decode/aggregate/record pipeline.

    Construct one per connected sensor and hand it to the link layer (which
    calls `submit_frame`) and to the display layer (which calls `snapshot`).
    Nothing here is process-global.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        settings_store: Optional[PipelineSettingsStore] = None,
        clock: Callable[[], float] = time.monotonic,
        session_clock: Callable[[], float] = time.perf_counter,
        tick_callback: Optional[TickCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        if settings_store is None:
            settings_store = PipelineSettingsStore(config or PipelineConfig.default())
        elif config is not None:
            settings_store.update(**_config_fields(config))
        self.settings_store = settings_store
        initial = settings_store.get()
        self.session = RecordingSession(
            initial.stage_names,
            raw_column=initial.raw_column,
            clock=session_clock,
        )
        self.dispatcher = IngestDispatcher(
            initial,
            self.session,
            clock=clock,
            tick_callback=tick_callback,
        )
        self._state_lock = threading.Lock()
        self._peripheral: Optional[PeripheralInfo] = None
        self._gated_frames = 0
        self._last_export: Optional[ExportDataset] = None
        self._last_export_text: Optional[str] = None
        self._remove_validator = settings_store.add_validator(self.dispatcher.check_config)
        self._settings_unsub = settings_store.subscribe(self._on_settings_changed, replay=False)

    # Lifecycle ---------------------------------------------------------------

    def start(self) -> None:
        self.dispatcher.start()

    def stop(self) -> None:
        """Stop the ingest worker. Settings updates are still tracked until `close()`."""
        self.dispatcher.stop()

    def close(self) -> None:
        """Stop the worker and detach from the settings store for good."""
        self.dispatcher.stop()
        self._remove_validator()
        self._settings_unsub()

    def __enter__(self) -> "EmgPipeline":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Link boundary -------------------------------------------------------------

    def on_connected(self, peripheral: PeripheralInfo) -> None:
        with self._state_lock:
            self._peripheral = peripheral
        self.logger.info("Connected to %s (rssi=%d)", peripheral.name, peripheral.rssi)

    def on_disconnected(self) -> None:
        with self._state_lock:
            peripheral, self._peripheral = self._peripheral, None
        name = peripheral.name if peripheral is not None else "unknown device"
        self.logger.info("Disconnected from %s", name)

    @property
    def connected(self) -> bool:
        with self._state_lock:
            return self._peripheral is not None

    @property
    def gated_frames(self) -> int:
        with self._state_lock:
            return self._gated_frames

    def submit_frame(self, payload: bytes) -> bool:
        """Hand one notification payload to the ingest worker. False if gated."""
        if self.settings_store.get().gate_on_connection:
            with self._state_lock:
                if self._peripheral is None:
                    self._gated_frames += 1
                    return False
        self.dispatcher.submit(payload)
        return True

    # Recording -------------------------------------------------------------------

    @property
    def recording(self) -> bool:
        return self.session.is_active

    def start_recording(self) -> None:
        self.session.start()

    def stop_recording(self) -> Optional[ExportDataset]:
        """Finalize the session; returns None when no recording was active."""
        try:
            dataset = self.session.stop()
        except NotRecordingError:
            self.logger.info("stop_recording ignored: not recording")
            return None
        text = dataset_to_csv(dataset)
        with self._state_lock:
            self._last_export = dataset
            self._last_export_text = text
        return dataset

    @property
    def last_export(self) -> Optional[ExportDataset]:
        with self._state_lock:
            return self._last_export

    @property
    def last_export_text(self) -> Optional[str]:
        with self._state_lock:
            return self._last_export_text

    def save_last_export(self, path: str | Path) -> Optional[Path]:
        """
        Persist the retained export. A directory path gets a timestamped file name.

        The dataset stays retained after an ExportIOError so it can be retried.
        """
        dataset = self.last_export
        if dataset is None:
            return None
        path = Path(path)
        if path.is_dir():
            path = path / default_export_name()
        return save_dataset(dataset, path)

    # Display boundary --------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        return self.dispatcher.latest_snapshot()

    def drain(self, timeout: Optional[float] = None) -> bool:
        return self.dispatcher.drain(timeout)

    def _on_settings_changed(self, config: PipelineConfig) -> None:
        self.dispatcher.apply_config(config)


def _config_fields(config: PipelineConfig) -> dict:
    return {
        "decoder": config.decoder,
        "stages": config.stages,
        "raw_history": config.raw_history,
        "raw_column": config.raw_column,
        "gate_on_connection": config.gate_on_connection,
    }


__all__ = ["EmgPipeline"]
