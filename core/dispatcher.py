from __future__ import annotations

import logging
import queue
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .decoder import SampleDecoder
from .windows import RmsCascade
from recording.session import RecordingSession
from shared.errors import ConfigurationError, MalformedFrameError
from shared.history_buffer import HistoryBuffer
from shared.models import EndOfStream, Frame, MetricsSnapshot, StageEmission
from shared.settings import PipelineConfig

logger = logging.getLogger(__name__)

TickCallback = Callable[[MetricsSnapshot], None]


@dataclass
class DispatcherStats:
    received: int = 0
    processed: int = 0
    samples: int = 0
    dropped: Counter = field(default_factory=Counter)

    def snapshot(self) -> Dict[str, object]:
        return {
            "received": self.received,
            "processed": self.processed,
            "samples": self.samples,
            "dropped": dict(self.dropped),
        }


class IngestDispatcher:
    """
    Single worker thread that decodes frames, feeds the cascade, records and
    publishes snapshots.

    Frames are handled strictly in submission order. The cascade, the history
    buffers and the decoder are touched only by the worker; readers get the
    most recent immutable MetricsSnapshot via `latest_snapshot()`.
    """

    def __init__(
        self,
        config: PipelineConfig,
        session: Optional[RecordingSession] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        tick_callback: Optional[TickCallback] = None,
        poll_timeout: float = 0.05,
    ) -> None:
        config.validate()
        self._clock = clock
        self._session = session
        self._tick_callback = tick_callback
        self._poll_timeout = poll_timeout
        self._raw_queue: "queue.Queue[bytes | EndOfStream]" = queue.Queue()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats = DispatcherStats()
        self._stats_lock = threading.Lock()
        self._config_lock = threading.Lock()
        self._pending_config: Optional[PipelineConfig] = None
        self._snapshot_lock = threading.Lock()
        self._next_seq = 0

        self._build(config)
        self._snapshot = MetricsSnapshot.empty(config.stage_names)

    # Lifecycle ---------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            if self._thread.is_alive():
                if not self._stop_event.is_set():
                    return
                raise RuntimeError("previous ingest worker is still shutting down")
            self._thread = None
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="IngestDispatcher", daemon=True)
        self._thread.start()
        logger.info("Ingest dispatcher started (stages=%s)", ", ".join(self._cascade.names))

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        """
        Process everything already submitted, then stop the worker.

        If the worker outlives `timeout` the thread reference is kept, so
        `start()` refuses to launch a second consumer until it has exited.
        """
        if self._thread is None:
            return
        if not self._stop_event.is_set():
            self._raw_queue.put(EndOfStream)
            self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Ingest dispatcher did not stop within timeout")
            return
        self._thread = None
        logger.info("Ingest dispatcher stopped: %s", self.stats())

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # Producer side -------------------------------------------------------------

    def submit(self, payload: bytes) -> None:
        """Queue one notification payload; callable from any thread."""
        self._raw_queue.put(bytes(payload))

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every submitted frame has been processed.

        Returns immediately when no worker is running; frames queued while
        stopped are processed after the next `start()`.
        """
        q = self._raw_queue

        def settled() -> bool:
            return q.unfinished_tasks == 0 or not self.is_running

        with q.all_tasks_done:
            q.all_tasks_done.wait_for(settled, timeout)
            return q.unfinished_tasks == 0

    def check_config(self, config: PipelineConfig) -> None:
        """
        Raise ConfigurationError unless `config` can replace the active one.

        Stage names and the raw column name are fixed for the lifetime of the
        dispatcher because the recording session and snapshot layout are
        keyed by them.
        """
        config.validate()
        if config.stage_names != self._cascade.names:
            raise ConfigurationError("stage names cannot change on a running pipeline")
        if config.raw_column != self._config.raw_column:
            raise ConfigurationError("raw_column cannot change on a running pipeline")

    def apply_config(self, config: PipelineConfig) -> None:
        """Swap decoder/cascade parameters at the next frame boundary."""
        self.check_config(config)
        with self._config_lock:
            self._pending_config = config

    # Reader side -----------------------------------------------------------------

    def latest_snapshot(self) -> MetricsSnapshot:
        with self._snapshot_lock:
            return self._snapshot

    def stats(self) -> Dict[str, object]:
        with self._stats_lock:
            return self._stats.snapshot()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    # Worker ----------------------------------------------------------------------

    def _build(self, config: PipelineConfig) -> None:
        self._config = config
        self._decoder = SampleDecoder(config.decoder)
        self._cascade = RmsCascade(config.stages, clock=self._clock)
        self._raw_history = HistoryBuffer(config.raw_history)
        self._stage_histories: Dict[str, HistoryBuffer] = {
            stage.name: HistoryBuffer(stage.history) for stage in config.stages
        }

    def _apply_pending_config(self) -> None:
        with self._config_lock:
            pending, self._pending_config = self._pending_config, None
        if pending is None:
            return
        self._build(pending)
        logger.info("Applied new pipeline configuration")

    def _run(self) -> None:
        while True:
            try:
                item = self._raw_queue.get(timeout=self._poll_timeout)
            except queue.Empty:
                if self._stop_event.is_set():
                    break
                self._poll_timers()
                continue

            try:
                if item is EndOfStream:
                    break

                if not isinstance(item, bytes):
                    logger.warning("Dispatcher ignored non-bytes item: %s", type(item))
                    continue

                with self._stats_lock:
                    self._stats.received += 1
                try:
                    self._process_payload(item)
                except MalformedFrameError as exc:
                    with self._stats_lock:
                        self._stats.dropped["malformed"] += 1
                    logger.warning("Dropped malformed frame: %s", exc)
                    self._publish(self._next_seq - 1)
                except Exception as exc:
                    with self._stats_lock:
                        self._stats.dropped["error"] += 1
                    logger.warning("Dispatcher skipped bad frame: %s", exc)
            finally:
                self._raw_queue.task_done()

    def _process_payload(self, payload: bytes) -> None:
        self._apply_pending_config()
        frame = Frame(
            samples=self._decoder.decode(payload),
            seq=self._next_seq,
            received_at=self._clock(),
        )
        self._next_seq += 1

        session = self._session
        for sample in frame.samples:
            emissions = self._cascade.push(sample)
            for emission in emissions:
                self._stage_histories[emission.stage].append(emission.value)
            self._raw_history.append(sample)
            if session is not None:
                session.record(sample, {em.stage: em.value for em in emissions})

        self._handle_timer_emissions(self._cascade.poll())
        with self._stats_lock:
            self._stats.processed += 1
            self._stats.samples += frame.n_samples
        self._publish(frame.seq)

    def _poll_timers(self) -> None:
        emissions = self._cascade.poll()
        if emissions:
            self._handle_timer_emissions(emissions)
            self._publish(self._next_seq - 1)

    def _handle_timer_emissions(self, emissions: List[StageEmission]) -> None:
        for emission in emissions:
            self._stage_histories[emission.stage].append(emission.value)
            if self._session is not None:
                self._session.observe(emission.stage, emission.value)

    def _publish(self, seq: int) -> None:
        with self._stats_lock:
            stats = self._stats.snapshot()
        session = self._session
        snapshot = MetricsSnapshot(
            seq=seq,
            raw=self._raw_history.snapshot(),
            stages={name: buf.snapshot() for name, buf in self._stage_histories.items()},
            latest=self._cascade.latest(),
            received=int(stats["received"]),
            processed=int(stats["processed"]),
            dropped=sum(stats["dropped"].values()),
            samples=int(stats["samples"]),
            recording=session.is_active if session is not None else False,
        )
        with self._snapshot_lock:
            self._snapshot = snapshot
        if self._tick_callback is not None:
            try:
                self._tick_callback(snapshot)
            except Exception as exc:
                logger.error("Dispatcher tick error: %s", exc)


__all__ = ["DispatcherStats", "IngestDispatcher", "TickCallback"]
