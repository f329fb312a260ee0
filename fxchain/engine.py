"""
Live pipeline and reference block engine.

The chain core only constructs pipelines and hands them to an engine; the
engine owns scheduling and sample processing. AudioEngine is the contract
the core relies on. BlockEngine is an in-process numpy implementation that
renders fixed-size blocks, crossfades between pipelines on commit and
smooths control changes per control. Real-time device I/O is left to
other AudioEngine implementations.

Signal blocks are float64 arrays shaped (frames, channels).
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 48000
DEFAULT_BLOCK_SIZE = 512
DEFAULT_CONTROL_LAG = 0.02  # seconds


# =============================================================================
# CONTROLS
# =============================================================================

class Control:
    """
    A named, live-adjustable value with linear smoothing.

    Setting a control does not jump: the value ramps from its current
    position to the target over ``lag`` seconds of rendered audio.
    """

    def __init__(self, name: str, value: float, lag: float = DEFAULT_CONTROL_LAG):
        self.name = name
        self.lag = lag
        self._current = float(value)
        self._target = float(value)
        self._increment = 0.0
        self._ramp_left = 0
        self._sample_rate = DEFAULT_SAMPLE_RATE

    def __repr__(self) -> str:
        return f"Control({self.name!r}, {self._target!r})"

    @property
    def value(self) -> float:
        """Target value (what the caller last set)."""
        return self._target

    @property
    def current(self) -> float:
        """Smoothed value at the end of the last rendered block."""
        return self._current

    def prepare(self, sample_rate: int) -> None:
        self._sample_rate = sample_rate

    def set(self, value: float) -> None:
        self._target = float(value)
        ramp = int(self.lag * self._sample_rate)
        if ramp <= 0:
            self._current = self._target
            self._ramp_left = 0
            return
        self._ramp_left = ramp
        self._increment = (self._target - self._current) / ramp

    def jump(self, value: float) -> None:
        """Set without smoothing."""
        self._target = self._current = float(value)
        self._ramp_left = 0

    def values(self, frames: int) -> np.ndarray:
        """Per-sample values for the next block, advancing the ramp."""
        if self._ramp_left <= 0:
            return np.full(frames, self._current)
        n = min(frames, self._ramp_left)
        out = np.full(frames, self._target)
        out[:n] = self._current + self._increment * np.arange(1, n + 1)
        self._ramp_left -= n
        self._current = self._target if self._ramp_left == 0 else float(out[n - 1])
        return out


# =============================================================================
# PROCESSING UNITS
# =============================================================================

class ProcessingUnit(ABC):
    """
    Opaque signal processor exposing namespaced controls.

    Subclasses declare their controls through ``control_values`` and
    implement ``process``. Every control is published as
    ``{prefix}_{name}``.
    """

    def __init__(self, prefix: str, control_values: Optional[Dict[str, float]] = None,
                 lag: float = DEFAULT_CONTROL_LAG):
        self.prefix = prefix
        self.sample_rate = DEFAULT_SAMPLE_RATE
        self.channels = 2
        self._controls: Dict[str, Control] = {}
        for name, value in (control_values or {}).items():
            self._controls[name] = Control(f"{prefix}_{name}", value, lag)

    @property
    def controls(self) -> Dict[str, Control]:
        """Controls keyed by their full namespaced name."""
        return {control.name: control for control in self._controls.values()}

    def control(self, name: str) -> Control:
        return self._controls[name]

    def ctl(self, name: str, frames: int) -> np.ndarray:
        """Per-sample smoothed values of a control for this block, shaped (frames, 1)."""
        return self._controls[name].values(frames)[:, np.newaxis]

    def prepare(self, sample_rate: int, channels: int) -> None:
        """Called once by the engine before the first block."""
        self.sample_rate = sample_rate
        self.channels = channels
        for control in self._controls.values():
            control.prepare(sample_rate)
        self.reset()

    def reset(self) -> None:
        """Clear internal state (filters, buffers)."""

    def output_channels(self, input_channels: int) -> int:
        return input_channels

    @abstractmethod
    def process(self, block: np.ndarray) -> np.ndarray:
        """Process one (frames, channels) block."""


class SourceUnit(ProcessingUnit):
    """Signal entry point, scaled by ``src_amp``."""

    NAMESPACE = "src"

    def __init__(self, channels: int, amp: float = 1.0):
        super().__init__(self.NAMESPACE, {'amp': amp})
        self.channels = channels

    def prepare(self, sample_rate: int, channels: int) -> None:
        super().prepare(sample_rate, self.channels)

    def output_channels(self, input_channels: int) -> int:
        return self.channels

    @abstractmethod
    def generate(self, frames: int, input_block: Optional[np.ndarray]) -> np.ndarray:
        """Produce an unscaled (frames, channels) block."""

    def process(self, block: np.ndarray) -> np.ndarray:
        return block * self.ctl('amp', len(block))

    def render(self, frames: int, input_block: Optional[np.ndarray]) -> np.ndarray:
        return self.process(self.generate(frames, input_block))


class InputSource(SourceUnit):
    """Live input channels from the engine."""

    kind = "input"

    def generate(self, frames: int, input_block: Optional[np.ndarray]) -> np.ndarray:
        out = np.zeros((frames, self.channels))
        if input_block is None:
            return out
        block = np.asarray(input_block, dtype=np.float64)
        if block.ndim == 1:
            block = block[:, np.newaxis]
        n = min(frames, block.shape[0])
        c = min(self.channels, block.shape[1])
        out[:n, :c] = block[:n, :c]
        return out


class NoiseSource(SourceUnit):
    """Synthetic placeholder: silence, or low-level white noise."""

    def __init__(self, channels: int, amp: float = 1.0, noise: bool = False,
                 level: float = 0.1, seed: Optional[int] = None):
        super().__init__(channels, amp)
        self.noise = noise
        self.level = level
        self._rng = np.random.default_rng(seed)

    @property
    def kind(self) -> str:
        return "noise" if self.noise else "silence"

    def generate(self, frames: int, input_block: Optional[np.ndarray]) -> np.ndarray:
        if not self.noise:
            return np.zeros((frames, self.channels))
        return self._rng.uniform(-self.level, self.level, size=(frames, self.channels))


class DestinationUnit(ProcessingUnit):
    """Signal exit point: channel matrix followed by ``dest_amp``."""

    NAMESPACE = "dest"

    def __init__(self, matrix: np.ndarray, amp: float = 1.0, kind: str = "out"):
        super().__init__(self.NAMESPACE, {'amp': amp})
        self.matrix = np.asarray(matrix, dtype=np.float64)
        self.kind = kind

    def output_channels(self, input_channels: int) -> int:
        return self.matrix.shape[1]

    def process(self, block: np.ndarray) -> np.ndarray:
        n_in = self.matrix.shape[0]
        if block.shape[1] != n_in:
            fitted = np.zeros((block.shape[0], n_in))
            c = min(n_in, block.shape[1])
            fitted[:, :c] = block[:, :c]
            block = fitted
        return (block @ self.matrix) * self.ctl('amp', len(block))


# =============================================================================
# PIPELINE
# =============================================================================

class UnitPrepareError(RuntimeError):
    """A unit raised while being prepared for playback."""

    def __init__(self, unit: ProcessingUnit, cause: BaseException):
        super().__init__(f"{unit.prefix}: {cause}")
        self.unit = unit
        self.cause = cause


def _prepare_unit(unit: ProcessingUnit, sample_rate: int, channels: int) -> None:
    try:
        unit.prepare(sample_rate, channels)
    except Exception as e:
        raise UnitPrepareError(unit, e) from e


class Pipeline:
    """
    Ordered graph description: source -> units -> destination.

    Raises:
        ValueError: if two units publish the same control name
        UnitPrepareError: from ``prepare``, naming the unit that failed
    """

    def __init__(self, source: SourceUnit, units: Iterable[ProcessingUnit],
                 destination: DestinationUnit):
        self.source = source
        self.units: List[ProcessingUnit] = list(units)
        self.destination = destination
        self.sample_rate: Optional[int] = None
        self._controls: Dict[str, Control] = {}
        for unit in [source] + self.units + [destination]:
            for name, control in unit.controls.items():
                if name in self._controls:
                    raise ValueError(f"Duplicate control name {name!r} in pipeline")
                self._controls[name] = control

    @property
    def controls(self) -> Dict[str, Control]:
        return dict(self._controls)

    @property
    def output_channels(self) -> int:
        return self.destination.matrix.shape[1]

    def prepare(self, sample_rate: int) -> None:
        channels = self.source.channels
        _prepare_unit(self.source, sample_rate, channels)
        for unit in self.units:
            _prepare_unit(unit, sample_rate, channels)
            channels = unit.output_channels(channels)
        _prepare_unit(self.destination, sample_rate, channels)
        self.sample_rate = sample_rate

    def render(self, frames: int, input_block: Optional[np.ndarray] = None) -> np.ndarray:
        signal = self.source.render(frames, input_block)
        for unit in self.units:
            signal = unit.process(signal)
        return self.destination.process(signal)


# =============================================================================
# ENGINES
# =============================================================================

class AudioEngine(ABC):
    """What the chain core needs from an audio engine."""

    sample_rate: int = DEFAULT_SAMPLE_RATE

    @property
    @abstractmethod
    def output_channels(self) -> int:
        """Number of output channels the engine drives."""

    @property
    @abstractmethod
    def input_channels(self) -> int:
        """Number of live input channels available."""

    @abstractmethod
    def commit(self, pipeline: Pipeline, fade_time: float) -> None:
        """Replace the live pipeline, crossfading over ``fade_time`` seconds."""

    @abstractmethod
    def set_control(self, name: str, value: float) -> None:
        """Update a live control. Raises KeyError for unknown names."""

    @abstractmethod
    def has_control(self, name: str) -> bool:
        pass

    @abstractmethod
    def start(self, offset: int = 0) -> None:
        """Start producing sound, writing from output channel ``offset``."""

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def free(self) -> None:
        """Drop the live pipeline."""


class BlockEngine(AudioEngine):
    """
    In-process engine that renders numpy blocks on demand.

    ``render`` is what an audio callback would call. It is guarded by a
    lock shared with ``commit`` so a pipeline swap never lands mid-block.

    Usage:
        engine = BlockEngine(sample_rate=48000, output_channels=2)
        chain = Chain(engine=engine)
        chain.build(["in", "lpf", "stereo"])
        chain.play()
        block = engine.render(512)
    """

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE, output_channels: int = 2,
                 input_channels: int = 2, block_size: int = DEFAULT_BLOCK_SIZE):
        if output_channels < 1:
            raise ValueError(f"output_channels must be >= 1, got {output_channels}")
        if input_channels < 0:
            raise ValueError(f"input_channels must be >= 0, got {input_channels}")
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._output_channels = output_channels
        self._input_channels = input_channels
        self._lock = threading.Lock()
        self._pipeline: Optional[Pipeline] = None
        self._outgoing: Optional[Pipeline] = None
        self._fade_total = 0
        self._fade_pos = 0
        self._playing = False
        self._offset = 0
        self.commit_count = 0

    @property
    def output_channels(self) -> int:
        return self._output_channels

    @property
    def input_channels(self) -> int:
        return self._input_channels

    @property
    def pipeline(self) -> Optional[Pipeline]:
        return self._pipeline

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def fading(self) -> bool:
        return self._outgoing is not None

    def commit(self, pipeline: Pipeline, fade_time: float) -> None:
        if pipeline.sample_rate != self.sample_rate:
            pipeline.prepare(self.sample_rate)
        with self._lock:
            previous = self._pipeline
            self._pipeline = pipeline
            fade = int(max(fade_time, 0.0) * self.sample_rate)
            if previous is not None and self._playing and fade > 0:
                self._outgoing = previous
                self._fade_total = fade
                self._fade_pos = 0
            else:
                self._outgoing = None
            self.commit_count += 1
        logger.debug("Committed pipeline with %d units (fade %d samples)",
                     len(pipeline.units), self._fade_total if self._outgoing else 0)

    def has_control(self, name: str) -> bool:
        pipeline = self._pipeline
        return pipeline is not None and name in pipeline.controls

    def get_control(self, name: str) -> float:
        if self._pipeline is None:
            raise KeyError(name)
        return self._pipeline.controls[name].value

    def set_control(self, name: str, value: float) -> None:
        # Ramp state is read by render under the same lock
        with self._lock:
            if self._pipeline is None:
                raise KeyError(name)
            self._pipeline.controls[name].set(value)

    def start(self, offset: int = 0) -> None:
        if offset < 0 or offset >= self._output_channels:
            raise ValueError(
                f"offset must be in [0, {self._output_channels - 1}], got {offset}"
            )
        self._offset = offset
        self._playing = True
        logger.info("Engine playing from output channel %d", offset)

    def stop(self) -> None:
        self._playing = False
        with self._lock:
            self._outgoing = None

    def free(self) -> None:
        with self._lock:
            self._pipeline = None
            self._outgoing = None
            self._playing = False

    def _place(self, block: np.ndarray, frames: int) -> np.ndarray:
        out = np.zeros((frames, self._output_channels))
        width = min(block.shape[1], self._output_channels - self._offset)
        out[:, self._offset:self._offset + width] = block[:, :width]
        return out

    def render(self, frames: Optional[int] = None,
               input_block: Optional[np.ndarray] = None) -> np.ndarray:
        """Render the next block of output; silence when stopped or empty."""
        frames = frames or self.block_size
        with self._lock:
            if not self._playing or self._pipeline is None:
                return np.zeros((frames, self._output_channels))
            out = self._place(self._pipeline.render(frames, input_block), frames)
            if self._outgoing is None:
                return out
            old = self._place(self._outgoing.render(frames, input_block), frames)
            gain = (self._fade_pos + np.arange(1, frames + 1)) / self._fade_total
            gain = np.clip(gain, 0.0, 1.0)[:, np.newaxis]
            self._fade_pos += frames
            if self._fade_pos >= self._fade_total:
                self._outgoing = None
            return old * (1.0 - gain) + out * gain

    def render_seconds(self, seconds: float,
                       input_signal: Optional[np.ndarray] = None) -> np.ndarray:
        """Render ``seconds`` of audio block by block."""
        total = int(seconds * self.sample_rate)
        blocks = []
        pos = 0
        while pos < total:
            frames = min(self.block_size, total - pos)
            chunk = None
            if input_signal is not None:
                chunk = input_signal[pos:pos + frames]
            blocks.append(self.render(frames, chunk))
            pos += frames
        if not blocks:
            return np.zeros((0, self._output_channels))
        return np.concatenate(blocks, axis=0)
