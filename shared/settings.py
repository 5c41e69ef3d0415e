from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ADVANCE_POLICIES = ("tumbling", "sliding")
TRIGGERS = ("count", "interval")
STATISTICS = ("rms", "max")
TIME_COLUMN = "Time"


@dataclass(frozen=True)
class DecoderConfig:
    """Affine map from 16-bit wire values to floats: (raw - offset) / scale."""

    offset: float = 2048.0
    scale: float = 2048.0
    center_frame: bool = False

    @classmethod
    def unipolar(cls) -> "DecoderConfig":
        return cls(offset=0.0, scale=4096.0)

    @classmethod
    def bipolar(cls) -> "DecoderConfig":
        return cls(offset=2048.0, scale=2048.0)

    def validate(self) -> None:
        if self.scale == 0:
            raise ConfigurationError("decoder scale must be non-zero")


@dataclass(frozen=True)
class StageConfig:
    """One stage of the aggregation cascade."""

    name: str
    trigger: str = "count"
    window_size: int = 10
    center: bool = False
    advance: str = "tumbling"
    statistic: str = "rms"
    alpha: Optional[float] = None
    interval_sec: float = 1.0
    history: int = 100

    def validate(self) -> None:
        if not self.name:
            raise ConfigurationError("stage name must not be empty")
        if self.trigger not in TRIGGERS:
            raise ConfigurationError(f"{self.name}: unknown trigger {self.trigger!r}")
        if self.history <= 0:
            raise ConfigurationError(f"{self.name}: history must be positive")
        if self.trigger == "interval":
            if not self.interval_sec > 0:
                raise ConfigurationError(f"{self.name}: interval_sec must be positive")
            return
        if self.window_size < 1:
            raise ConfigurationError(f"{self.name}: window_size must be at least 1")
        if self.advance not in ADVANCE_POLICIES:
            raise ConfigurationError(f"{self.name}: unknown advance policy {self.advance!r}")
        if self.statistic not in STATISTICS:
            raise ConfigurationError(f"{self.name}: unknown statistic {self.statistic!r}")
        if self.alpha is not None and not (0.0 < self.alpha <= 1.0):
            raise ConfigurationError(f"{self.name}: alpha must be in (0, 1]")


@dataclass(frozen=True)
class PipelineConfig:
    """Everything needed to build one device pipeline."""

    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    stages: Tuple[StageConfig, ...] = ()
    raw_history: int = 1000
    raw_column: str = "EMG"
    gate_on_connection: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", tuple(self.stages))

    @classmethod
    def default(cls) -> "PipelineConfig":
        return cls(
            stages=(
                StageConfig("ShortRMS", window_size=10, center=True, advance="sliding"),
                StageConfig("LongRMS", window_size=10, center=False, advance="tumbling"),
                StageConfig("MaxRMS", trigger="interval", interval_sec=1.0),
            )
        )

    @property
    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def validate(self) -> None:
        self.decoder.validate()
        if self.raw_history <= 0:
            raise ConfigurationError("raw_history must be positive")
        if not self.stages:
            raise ConfigurationError("at least one cascade stage is required")
        names = self.stage_names
        if len(set(names)) != len(names):
            raise ConfigurationError("stage names must be unique")
        if len(set((TIME_COLUMN, self.raw_column, *names))) != len(names) + 2:
            raise ConfigurationError(
                f"column names must be distinct from each other and from {TIME_COLUMN!r}"
            )
        for stage in self.stages:
            stage.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decoder": asdict(self.decoder),
            "stages": [asdict(stage) for stage in self.stages],
            "raw_history": self.raw_history,
            "raw_column": self.raw_column,
            "gate_on_connection": self.gate_on_connection,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("pipeline config must be a mapping")
        try:
            decoder = DecoderConfig(**dict(data.get("decoder", {})))
            stages = tuple(StageConfig(**dict(item)) for item in data.get("stages", ()))
        except TypeError as exc:
            raise ConfigurationError(f"invalid pipeline config: {exc}") from exc
        config = cls(
            decoder=decoder,
            stages=stages,
            raw_history=int(data.get("raw_history", cls.raw_history)),
            raw_column=str(data.get("raw_column", cls.raw_column)),
            gate_on_connection=bool(data.get("gate_on_connection", cls.gate_on_connection)),
        )
        config.validate()
        return config


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc})") from exc
    config = PipelineConfig.from_dict(data)
    logger.info("Loaded pipeline config from %s (%d stages)", path, len(config.stages))
    return config


def save_pipeline_config(config: PipelineConfig, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    logger.info("Saved pipeline config to %s", path)


class PipelineSettingsStore:
    """
    Thread-safe holder for the active PipelineConfig.

    Updates are validated, then checked by every registered validator, before
    they are published; a validator that raises leaves the current settings in
    place and the error reaches the caller. Subscribers are called outside the
    lock.
    """

    def __init__(self, initial: Optional[PipelineConfig] = None) -> None:
        settings = initial or PipelineConfig.default()
        settings.validate()
        self._settings = settings
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[PipelineConfig], None]] = {}
        self._validators: Dict[int, Callable[[PipelineConfig], None]] = {}
        self._next_token = 0

    def get(self) -> PipelineConfig:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> PipelineConfig:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            new_settings.validate()
            for validator in self._validators.values():
                validator(new_settings)
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                logger.debug("Pipeline settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def add_validator(self, validator: Callable[[PipelineConfig], None]) -> Callable[[], None]:
        """Register a check run on every candidate config before it is committed."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._validators[token] = validator

        def remove() -> None:
            with self._lock:
                self._validators.pop(token, None)

        return remove

    def subscribe(self, callback: Callable[[PipelineConfig], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = [
    "ADVANCE_POLICIES",
    "TRIGGERS",
    "STATISTICS",
    "TIME_COLUMN",
    "DecoderConfig",
    "StageConfig",
    "PipelineConfig",
    "PipelineSettingsStore",
    "load_pipeline_config",
    "save_pipeline_config",
]
