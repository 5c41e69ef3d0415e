from __future__ import annotations

from typing import Optional

import numpy as np

from shared.errors import MalformedFrameError
from shared.settings import DecoderConfig

_WIRE_DTYPE = np.dtype("<u2")


class SampleDecoder:
    """
    Turns notification payloads into normalized float samples.

    Each sample is a little-endian uint16 on the wire; the configured affine
    map `(raw - offset) / scale` is applied after unpacking. Decoding is pure.
    """

    def __init__(self, config: Optional[DecoderConfig] = None) -> None:
        self._config = config or DecoderConfig()
        self._config.validate()

    @property
    def config(self) -> DecoderConfig:
        return self._config

    def decode(self, payload: bytes) -> np.ndarray:
        data = bytes(payload)
        if len(data) % 2:
            raise MalformedFrameError(len(data))
        raw = np.frombuffer(data, dtype=_WIRE_DTYPE).astype(np.float64)
        samples = (raw - self._config.offset) / self._config.scale
        if self._config.center_frame and samples.size:
            samples -= samples.mean()
        return samples


__all__ = ["SampleDecoder"]
