"""
Destination routing: multichannel passthrough or stereo downmix.

A chain ends either in a multichannel passthrough or in a stereo
downmix. The plan is a (in_channels, out_channels) gain matrix the
destination unit applies before its amplitude control.

Stereo strategies:
  - equal_energy: every channel is spread across the stereo field with
    constant-power pan gains, levels compensated by 1/sqrt(n).
  - weighted: channel 0 hard left, channel 1 hard right, remaining
    channels blended into both sides per a BlendPolicy.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

import numpy as np

from .errors import InvalidParamRange
from .spec import DestinationKind


class DownmixStrategy(Enum):
    PASSTHROUGH = "passthrough"
    EQUAL_ENERGY = "equal_energy"
    WEIGHTED = "weighted"


@dataclass(frozen=True)
class BlendPolicy:
    """How channels beyond the first two are folded into a weighted stereo mix."""
    left: float = 0.5
    right: float = 0.5
    normalize: bool = True  # divide extra channels by sqrt(count)

    def __post_init__(self):
        for name in ('left', 'right'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidParamRange(f"blend_{name}", value, "must be in [0, 1]")

    def to_dict(self) -> Dict[str, Any]:
        return {'left': self.left, 'right': self.right, 'normalize': self.normalize}


@dataclass
class DestinationPlan:
    """Resolved routing for a chain's destination."""
    kind: DestinationKind
    strategy: DownmixStrategy
    in_channels: int
    out_channels: int
    matrix: np.ndarray = field(repr=False)

    @property
    def is_stereo(self) -> bool:
        return self.out_channels == 2 and self.strategy != DownmixStrategy.PASSTHROUGH

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'strategy': self.strategy.value,
            'in_channels': self.in_channels,
            'out_channels': self.out_channels,
        }


def pan_gains(position: float) -> np.ndarray:
    """Constant-power (left, right) gains for a pan position in [-1, 1]."""
    angle = (position + 1.0) * math.pi / 4.0
    return np.array([math.cos(angle), math.sin(angle)])


def equal_energy_matrix(channels: int) -> np.ndarray:
    """Spread ``channels`` evenly from hard left to hard right."""
    matrix = np.zeros((channels, 2))
    if channels == 1:
        matrix[0] = pan_gains(0.0)
        return matrix
    level = 1.0 / math.sqrt(channels)
    for ch in range(channels):
        position = -1.0 + 2.0 * ch / (channels - 1)
        matrix[ch] = pan_gains(position) * level
    return matrix


def weighted_matrix(channels: int, policy: BlendPolicy = BlendPolicy()) -> np.ndarray:
    """First two channels to left/right, the rest blended across both."""
    matrix = np.zeros((channels, 2))
    if channels == 1:
        matrix[0] = (1.0, 1.0)
        return matrix
    matrix[0, 0] = 1.0
    matrix[1, 1] = 1.0
    extra = channels - 2
    if extra > 0:
        scale = 1.0 / math.sqrt(extra) if policy.normalize else 1.0
        matrix[2:, 0] = policy.left * scale
        matrix[2:, 1] = policy.right * scale
    return matrix


def resolve_destination(destination: Any, channels: int, engine_output_channels: int,
                        equal_energy: bool = True,
                        blend: BlendPolicy = BlendPolicy()) -> DestinationPlan:
    """
    Decide how a chain's signal reaches the engine outputs.

    Args:
        destination: Destination tag or DestinationKind of the spec
        channels: Channel count of the chain's signal
        engine_output_channels: Outputs the engine drives
        equal_energy: Prefer the equal-energy spread when downmixing
        blend: Weights for the fixed weighted mix

    Returns:
        DestinationPlan: stereo when the destination is the stereo kind or
        the engine has two or fewer outputs, passthrough otherwise.
    """
    if channels < 1:
        raise InvalidParamRange('channels', channels, "must be >= 1")
    kind = destination if isinstance(destination, DestinationKind) else DestinationKind.from_tag(destination)
    if kind is None:
        raise InvalidParamRange('destination', destination, "unknown destination kind")

    if kind == DestinationKind.STEREO or engine_output_channels <= 2:
        if equal_energy:
            strategy = DownmixStrategy.EQUAL_ENERGY
            matrix = equal_energy_matrix(channels)
        else:
            strategy = DownmixStrategy.WEIGHTED
            matrix = weighted_matrix(channels, blend)
        return DestinationPlan(kind, strategy, channels, 2, matrix)

    return DestinationPlan(kind, DownmixStrategy.PASSTHROUGH, channels, channels,
                           np.eye(channels))
