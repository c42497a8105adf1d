from __future__ import annotations

import math
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from scipy import signal
from scipy.io import wavfile

from posefx.core.constants import SOURCE_EFFECT_KINDS


class AudioUnitError(RuntimeError):
    """Raised when a unit cannot be wired into the graph."""


class AudioNode:
    """Pull-based processing unit with Web-Audio style connect/disconnect."""

    PARAMS: Dict[str, float] = {}

    def __init__(self, name: str, sample_rate: int = 44100):
        self.name = name
        self.sample_rate = int(sample_rate)
        self.params: Dict[str, float] = dict(self.PARAMS)
        self._inputs: List["AudioNode"] = []
        self._outputs: List["AudioNode"] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def inputs(self) -> tuple:
        return tuple(self._inputs)

    @property
    def outputs(self) -> tuple:
        return tuple(self._outputs)

    def connect(self, dst: "AudioNode") -> None:
        if dst is self:
            raise AudioUnitError(f"{self.name} cannot feed itself")
        if dst in self._outputs:
            return
        self._outputs.append(dst)
        dst._inputs.append(self)

    def disconnect(self) -> None:
        for dst in self._outputs:
            if self in dst._inputs:
                dst._inputs.remove(self)
        self._outputs.clear()

    def isolate(self) -> None:
        """Drop every incoming and outgoing connection."""
        self.disconnect()
        for src in list(self._inputs):
            src._outputs.remove(self)
        self._inputs.clear()

    def open(self) -> None:
        """Acquire processing resources before the unit is wired."""

    def set_param(self, name: str, value: float) -> None:
        if name not in self.params:
            raise KeyError(f"{self.name} has no parameter {name!r}")
        self.params[name] = float(value)

    def reset(self) -> None:
        pass

    def pull(self, frames: int) -> np.ndarray:
        if not self._inputs:
            block = np.zeros(frames, dtype=np.float32)
        else:
            block = np.sum([src.pull(frames) for src in self._inputs], axis=0)
        return self.process(np.asarray(block, dtype=np.float32))

    def process(self, block: np.ndarray) -> np.ndarray:
        return block


class TrackSource(AudioNode):
    PARAMS = {"playback_rate": 1.0}

    def __init__(
        self,
        name: str = "source",
        data: Optional[np.ndarray] = None,
        sample_rate: int = 44100,
        loop: bool = True,
    ):
        super().__init__(name, sample_rate)
        self.data = np.zeros(0, dtype=np.float32) if data is None else np.asarray(data, dtype=np.float32)
        self.loop = loop
        self.position = 0.0

    @classmethod
    def from_wav(cls, path: str | Path, sample_rate: int = 44100, loop: bool = True) -> "TrackSource":
        rate, raw = wavfile.read(str(path))
        data = np.asarray(raw)
        if np.issubdtype(data.dtype, np.integer):
            data = data.astype(np.float32) / float(np.iinfo(raw.dtype).max)
        if data.ndim > 1:
            data = data.mean(axis=1)
        if int(rate) != int(sample_rate):
            g = math.gcd(int(rate), int(sample_rate))
            data = signal.resample_poly(data, int(sample_rate) // g, int(rate) // g)
        return cls(name=Path(path).stem, data=data, sample_rate=sample_rate, loop=loop)

    def load(self, data: np.ndarray) -> None:
        self.data = np.asarray(data, dtype=np.float32)
        self.position = 0.0

    def pull(self, frames: int) -> np.ndarray:
        n = self.data.size
        if n == 0:
            return np.zeros(frames, dtype=np.float32)
        rate = max(0.0, float(self.params["playback_rate"]))
        positions = self.position + rate * np.arange(frames, dtype=np.float64)
        grid = np.arange(n, dtype=np.float64)
        if self.loop:
            positions = np.mod(positions, n)
            out = np.interp(positions, grid, self.data)
            self.position = float((self.position + rate * frames) % n)
        else:
            out = np.interp(positions, grid, self.data, left=0.0, right=0.0)
            self.position = min(float(n), self.position + rate * frames)
        return out.astype(np.float32)


class OutputSink(AudioNode):
    def render(self, frames: int) -> np.ndarray:
        return np.clip(self.pull(frames), -1.0, 1.0).astype(np.float32)


class DistortionUnit(AudioNode):
    PARAMS = {"distortion": 0.4, "wet": 1.0}

    def process(self, block: np.ndarray) -> np.ndarray:
        drive = 1.0 + 50.0 * max(0.0, self.params["distortion"])
        wet = np.tanh(drive * block) / np.tanh(drive)
        mix = self.params["wet"]
        return ((1.0 - mix) * block + mix * wet).astype(np.float32)


class FeedbackDelayUnit(AudioNode):
    PARAMS = {"delay_time": 0.25, "feedback": 0.125, "wet": 0.5}
    MAX_DELAY_S = 1.0

    def __init__(self, name: str, sample_rate: int = 44100):
        super().__init__(name, sample_rate)
        self._buf = np.zeros(int(self.MAX_DELAY_S * self.sample_rate) + 1, dtype=np.float32)
        self._write = 0

    def reset(self) -> None:
        self._buf[:] = 0.0
        self._write = 0

    def process(self, block: np.ndarray) -> np.ndarray:
        size = self._buf.size
        delay = int(round(self.params["delay_time"] * self.sample_rate))
        delay = min(max(1, delay), size - 1)
        fb = self.params["feedback"]
        mix = self.params["wet"]
        out = np.empty_like(block)
        i = 0
        # Chunks no longer than the delay only read samples written earlier.
        while i < block.size:
            m = min(delay, block.size - i)
            steps = np.arange(m)
            delayed = self._buf[(self._write - delay + steps) % size]
            x = block[i:i + m]
            self._buf[(self._write + steps) % size] = x + fb * delayed
            out[i:i + m] = (1.0 - mix) * x + mix * delayed
            self._write = (self._write + m) % size
            i += m
        return out


class PhaserUnit(AudioNode):
    PARAMS = {"octaves": 3.0, "base_frequency": 100.0, "frequency": 10.0, "wet": 0.5}
    STAGES = 4

    def __init__(self, name: str, sample_rate: int = 44100):
        super().__init__(name, sample_rate)
        self._phase = 0.0
        self._zi = [np.zeros(1) for _ in range(self.STAGES)]

    def reset(self) -> None:
        self._phase = 0.0
        self._zi = [np.zeros(1) for _ in range(self.STAGES)]

    def process(self, block: np.ndarray) -> np.ndarray:
        sweep = 0.5 * (1.0 + math.sin(self._phase))
        cutoff = self.params["base_frequency"] * 2.0 ** (self.params["octaves"] * sweep)
        cutoff = min(cutoff, 0.45 * self.sample_rate)
        t = math.tan(math.pi * cutoff / self.sample_rate)
        a = (t - 1.0) / (t + 1.0)
        wet = block.astype(np.float64)
        for k in range(self.STAGES):
            wet, self._zi[k] = signal.lfilter([a, 1.0], [1.0, a], wet, zi=self._zi[k])
        self._phase = (
            self._phase + 2.0 * math.pi * self.params["frequency"] * block.size / self.sample_rate
        ) % (2.0 * math.pi)
        mix = self.params["wet"]
        return ((1.0 - mix) * block + mix * wet).astype(np.float32)


class PitchShiftUnit(AudioNode):
    """Two-tap modulated delay line crossfaded with sin^2 windows."""

    PARAMS = {"pitch": 0.0, "window_size": 0.1, "wet": 1.0}
    CHUNK = 4096

    def __init__(self, name: str, sample_rate: int = 44100):
        super().__init__(name, sample_rate)
        self._window = max(2, int(self.params["window_size"] * self.sample_rate))
        self._buf = np.zeros(self._window + self.CHUNK + 2, dtype=np.float32)
        self._write = 0
        self._phase = 0.0

    def reset(self) -> None:
        self._buf[:] = 0.0
        self._write = 0
        self._phase = 0.0

    def _process_chunk(self, x: np.ndarray) -> np.ndarray:
        size = self._buf.size
        ratio = 2.0 ** (self.params["pitch"] / 12.0)
        step = (1.0 - ratio) / self._window
        m = x.size
        phases = np.mod(self._phase + step * np.arange(1, m + 1), 1.0)
        idx = self._write + np.arange(m)
        self._buf[idx % size] = x
        out = np.zeros(m, dtype=np.float64)
        for offset in (0.0, 0.5):
            p = np.mod(phases + offset, 1.0)
            pos = idx - p * self._window
            base = np.floor(pos).astype(np.int64)
            frac = pos - base
            tap = self._buf[base % size] * (1.0 - frac) + self._buf[(base + 1) % size] * frac
            out += tap * np.sin(np.pi * p) ** 2
        self._phase = float(phases[-1])
        self._write = int((self._write + m) % size)
        return out

    def process(self, block: np.ndarray) -> np.ndarray:
        if block.size == 0:
            return block
        shifted = np.concatenate(
            [
                self._process_chunk(block[i:i + self.CHUNK])
                for i in range(0, block.size, self.CHUNK)
            ]
        )
        mix = self.params["wet"]
        return ((1.0 - mix) * block + mix * shifted).astype(np.float32)


UNIT_TYPES = {
    "pitch_shift": PitchShiftUnit,
    "phaser": PhaserUnit,
    "feedback_delay": FeedbackDelayUnit,
    "distortion": DistortionUnit,
}


def unit_params(kind: str) -> Dict[str, float]:
    """Parameter names and defaults an effect kind accepts."""
    if kind in SOURCE_EFFECT_KINDS:
        return dict(TrackSource.PARAMS)
    unit_type = UNIT_TYPES.get(kind)
    if unit_type is None:
        raise ValueError(f"unknown effect kind: {kind}")
    return dict(unit_type.PARAMS)


def create_unit(kind: str, name: str, sample_rate: int = 44100) -> Optional[AudioNode]:
    """Build the processing unit for an effect kind; source-level kinds have none."""
    if kind in SOURCE_EFFECT_KINDS:
        return None
    unit_type = UNIT_TYPES.get(kind)
    if unit_type is None:
        raise ValueError(f"unknown effect kind: {kind}")
    return unit_type(name, sample_rate)
