from __future__ import annotations

import logging
from typing import Optional

from posefx.core.effect_graph import EffectGraph
from posefx.models.config import AudioConfig

logger = logging.getLogger(__name__)


class AudioOutput:
    """Plays the effect graph through the default (or configured) output device."""

    def __init__(self, graph: EffectGraph, cfg: AudioConfig):
        self.graph = graph
        self.cfg = cfg
        self._stream = None
        self.underflows = 0

    @property
    def running(self) -> bool:
        return self._stream is not None

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            self.underflows += 1
        with self.graph.lock:
            block = self.graph.sink.render(frames)
        outdata[:, 0] = block
        if outdata.shape[1] > 1:
            outdata[:, 1:] = block[:, None]

    def start(self, device: Optional[str] = None) -> None:
        if self._stream is not None:
            return
        # PortAudio is loaded on first use so headless hosts can import the package.
        import sounddevice as sd

        self._stream = sd.OutputStream(
            samplerate=self.cfg.sample_rate,
            blocksize=self.cfg.block_size,
            channels=2,
            dtype="float32",
            device=device or self.cfg.output_device,
            callback=self._callback,
        )
        self._stream.start()
        logger.info("audio output started at %d Hz", self.cfg.sample_rate)

    def stop(self) -> None:
        if self._stream is None:
            return
        self._stream.stop()
        self._stream.close()
        self._stream = None
        logger.info("audio output stopped")
