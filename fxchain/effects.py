"""
Built-in effect kinds.

Each effect is a ProcessingUnit with a declared ParamSchema. The chain
core never looks inside them: it only calls the catalog builder with a
prefix and a parameter bag and wires the returned unit into the pipeline.

All effects share a wet/dry ``mix`` control.
"""

import math
from abc import abstractmethod
from typing import Any, Dict, Mapping, Optional, Type

import numpy as np
from scipy.signal import butter, lfilter

from .engine import ProcessingUnit
from .params import ParamSchema, ParamSpec, merge_schemas

# =============================================================================
# SCHEMAS
# =============================================================================

COMMON_SCHEMA = ParamSchema.of(
    ParamSpec('mix', 1.0, 0.0, 1.0, doc="Wet/dry mix"),
)


def _schema(*params: ParamSpec) -> ParamSchema:
    return merge_schemas([COMMON_SCHEMA, ParamSchema.of(*params)])


class Effect(ProcessingUnit):
    """Base for built-in effects: schema-declared controls plus wet/dry mix."""

    kind = ""
    schema = COMMON_SCHEMA

    def __init__(self, prefix: str, params: Optional[Mapping[str, Any]] = None):
        values = self.schema.resolve(params or {}, prefix)
        super().__init__(prefix, values)

    def process(self, block: np.ndarray) -> np.ndarray:
        frames = len(block)
        mix = self.ctl('mix', frames)
        wet = self.render(block)
        return block * (1.0 - mix) + wet * mix

    @abstractmethod
    def render(self, block: np.ndarray) -> np.ndarray:
        """Fully wet output for one block."""


# =============================================================================
# EFFECTS
# =============================================================================

class Gain(Effect):
    kind = "gain"
    schema = _schema(ParamSpec('amp', 1.0, 0.0, 8.0, doc="Linear gain"))

    def render(self, block: np.ndarray) -> np.ndarray:
        return block * self.ctl('amp', len(block))


class _Filter(Effect):
    """Second-order Butterworth filter; coefficients follow ``freq`` per block."""

    btype = "low"

    def reset(self) -> None:
        self._coeff_freq = None
        self._b = self._a = None
        self._zi = None

    def _design(self, freq: float) -> None:
        nyquist = self.sample_rate / 2.0
        cutoff = min(max(freq / nyquist, 1e-5), 0.99)
        self._b, self._a = butter(2, cutoff, btype=self.btype)
        self._coeff_freq = freq

    def render(self, block: np.ndarray) -> np.ndarray:
        freq = float(self.ctl('freq', len(block))[-1, 0])
        if self._coeff_freq != freq:
            self._design(freq)
        if self._zi is None or self._zi.shape[1] != block.shape[1]:
            self._zi = np.zeros((len(self._a) - 1, block.shape[1]))
        out, self._zi = lfilter(self._b, self._a, block, axis=0, zi=self._zi)
        return out


class LowPass(_Filter):
    kind = "lpf"
    btype = "low"
    schema = _schema(ParamSpec('freq', 1200.0, 20.0, 20000.0, doc="Cutoff (Hz)"))


class HighPass(_Filter):
    kind = "hpf"
    btype = "high"
    schema = _schema(ParamSpec('freq', 200.0, 20.0, 20000.0, doc="Cutoff (Hz)"))


class Crush(Effect):
    """Sample-and-hold decimation plus bit-depth reduction."""

    kind = "crush"
    schema = _schema(
        ParamSpec('rate', 4, 1, 64, type=int, doc="Hold each sample this many frames"),
        ParamSpec('bits', 8, 1, 24, type=int, doc="Quantizer bit depth"),
    )

    def reset(self) -> None:
        self._phase = 0
        self._held: Optional[np.ndarray] = None

    def render(self, block: np.ndarray) -> np.ndarray:
        frames = len(block)
        rate = max(int(round(self.ctl('rate', frames)[-1, 0])), 1)
        bits = max(int(round(self.ctl('bits', frames)[-1, 0])), 1)
        positions = self._phase + np.arange(frames)
        hold_index = positions - (positions % rate) - self._phase
        out = np.empty_like(block)
        fresh = hold_index >= 0
        out[fresh] = block[hold_index[fresh]]
        if not fresh.all():
            held = self._held if self._held is not None else np.zeros(block.shape[1])
            out[~fresh] = held
        self._phase = (self._phase + frames) % rate
        self._held = out[-1].copy()
        steps = 2.0 ** (bits - 1)
        return np.round(out * steps) / steps


class Distortion(Effect):
    """Tanh drive, pre-gain 1 to 10."""

    kind = "dist"
    schema = _schema(ParamSpec('drive', 0.5, 0.0, 1.0, doc="Drive amount"))

    def render(self, block: np.ndarray) -> np.ndarray:
        pre_gain = 1.0 + self.ctl('drive', len(block)) * 9.0
        return np.tanh(block * pre_gain)


class Delay(Effect):
    """Feedback delay line."""

    kind = "delay"
    max_time = 2.0
    schema = _schema(
        ParamSpec('time', 0.25, 0.001, 2.0, doc="Delay time (s)"),
        ParamSpec('feedback', 0.3, 0.0, 0.95, doc="Feedback amount"),
    )

    def reset(self) -> None:
        size = int(self.max_time * self.sample_rate) + 1
        self._buffer = np.zeros((size, self.channels))
        self._write = 0

    def render(self, block: np.ndarray) -> np.ndarray:
        frames = len(block)
        if self._buffer.shape[1] != block.shape[1]:
            self._buffer = np.zeros((self._buffer.shape[0], block.shape[1]))
        delay = max(int(self.ctl('time', frames)[-1, 0] * self.sample_rate), 1)
        feedback = self.ctl('feedback', frames)
        size = self._buffer.shape[0]
        out = np.empty_like(block)
        pos = 0
        # Chunks no longer than the delay only ever read already-written samples
        while pos < frames:
            n = min(delay, frames - pos)
            idx = (self._write + np.arange(n)) % size
            read = (idx - delay) % size
            delayed = self._buffer[read]
            out[pos:pos + n] = delayed
            self._buffer[idx] = block[pos:pos + n] + delayed * feedback[pos:pos + n]
            self._write = (self._write + n) % size
            pos += n
        return out


class Comb(Effect):
    """Feedback comb filter tuned by frequency."""

    kind = "comb"
    schema = _schema(
        ParamSpec('freq', 220.0, 20.0, 4000.0, doc="Resonant frequency (Hz)"),
        ParamSpec('feedback', 0.7, 0.0, 0.98, doc="Resonance"),
    )

    def reset(self) -> None:
        size = int(self.sample_rate / 20.0) + 1
        self._buffer = np.zeros((size, self.channels))
        self._write = 0

    def render(self, block: np.ndarray) -> np.ndarray:
        frames = len(block)
        if self._buffer.shape[1] != block.shape[1]:
            self._buffer = np.zeros((self._buffer.shape[0], block.shape[1]))
        size = self._buffer.shape[0]
        period = min(max(int(round(self.sample_rate / self.ctl('freq', frames)[-1, 0])), 1),
                     size - 1)
        feedback = self.ctl('feedback', frames)
        out = np.empty_like(block)
        pos = 0
        while pos < frames:
            n = min(period, frames - pos)
            idx = (self._write + np.arange(n)) % size
            delayed = self._buffer[(idx - period) % size]
            out[pos:pos + n] = block[pos:pos + n] + delayed * feedback[pos:pos + n]
            self._buffer[idx] = out[pos:pos + n]
            self._write = (self._write + n) % size
            pos += n
        return out


class Tremolo(Effect):
    """Sine amplitude modulation."""

    kind = "tremolo"
    schema = _schema(
        ParamSpec('rate', 4.0, 0.01, 50.0, doc="LFO rate (Hz)"),
        ParamSpec('depth', 0.5, 0.0, 1.0, doc="Modulation depth"),
    )

    def reset(self) -> None:
        self._phase = 0.0

    def render(self, block: np.ndarray) -> np.ndarray:
        frames = len(block)
        rate = self.ctl('rate', frames)[:, 0]
        depth = self.ctl('depth', frames)
        phases = self._phase + np.cumsum(2.0 * math.pi * rate / self.sample_rate)
        self._phase = float(phases[-1] % (2.0 * math.pi))
        lfo = (1.0 + np.sin(phases))[:, np.newaxis] * 0.5
        return block * (1.0 - depth * lfo)


BUILTIN_EFFECTS: Dict[str, Type[Effect]] = {
    cls.kind: cls for cls in (Gain, LowPass, HighPass, Crush, Distortion, Delay, Comb, Tremolo)
}
