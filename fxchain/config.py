"""
Chain Configuration Module

Single configuration object consumed when a chain is created. After
construction it only changes through the explicit setters, which
re-validate ranges before anything is applied.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping
import os

from .errors import InvalidParamRange
from .routing import BlendPolicy

MAX_CHANNELS = 64
MAX_AMP = 4.0
MAX_FADE_TIME = 30.0

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class ChainConfig:
    """
    Configuration for a Chain.

    Attributes:
        channels: Channel count of the chain's signal (source width)
        real_input: Use live input channels; otherwise a synthetic source
        noise_source: Synthetic source produces low-level noise instead of silence
        equal_energy: Stereo downmix uses the equal-energy spread, else weighted mix
        src_amp: Source amplitude
        dest_amp: Destination amplitude
        fade_time: Crossfade (seconds) applied when a new pipeline is committed
        blend_left: Weighted downmix: left weight of channels beyond the first two
        blend_right: Weighted downmix: right weight of channels beyond the first two
    """
    channels: int = 2
    real_input: bool = True
    noise_source: bool = False
    equal_energy: bool = True
    src_amp: float = 1.0
    dest_amp: float = 1.0
    fade_time: float = 0.2
    blend_left: float = 0.5
    blend_right: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        self.validate()

    def validate(self) -> None:
        _check_channels(self.channels)
        _check_range('src_amp', self.src_amp, 0.0, MAX_AMP)
        _check_range('dest_amp', self.dest_amp, 0.0, MAX_AMP)
        _check_range('fade_time', self.fade_time, 0.0, MAX_FADE_TIME)
        _check_range('blend_left', self.blend_left, 0.0, 1.0)
        _check_range('blend_right', self.blend_right, 0.0, 1.0)
        for name in ('real_input', 'noise_source', 'equal_energy'):
            if not isinstance(getattr(self, name), bool):
                raise InvalidParamRange(name, getattr(self, name), "expected bool")

    @property
    def blend(self) -> BlendPolicy:
        return BlendPolicy(left=self.blend_left, right=self.blend_right)

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_channels(self, channels: int) -> None:
        _check_channels(channels)
        self.channels = channels

    def set_real_input(self, enabled: bool) -> None:
        self.real_input = bool(enabled)

    def set_noise_source(self, enabled: bool) -> None:
        self.noise_source = bool(enabled)

    def set_equal_energy(self, enabled: bool) -> None:
        self.equal_energy = bool(enabled)

    def set_src_amp(self, amp: float) -> None:
        self.src_amp = _check_range('src_amp', amp, 0.0, MAX_AMP)

    def set_dest_amp(self, amp: float) -> None:
        self.dest_amp = _check_range('dest_amp', amp, 0.0, MAX_AMP)

    def set_fade_time(self, seconds: float) -> None:
        self.fade_time = _check_range('fade_time', seconds, 0.0, MAX_FADE_TIME)

    def set_blend(self, left: float, right: float) -> None:
        left = _check_range('blend_left', left, 0.0, 1.0)
        right = _check_range('blend_right', right, 0.0, 1.0)
        self.blend_left, self.blend_right = left, right

    def update(self, **changes: Any) -> None:
        """Apply several changes at once; nothing changes if any is invalid."""
        known = {f.name for f in fields(self)}
        for name in changes:
            if name not in known:
                raise InvalidParamRange(name, changes[name], "unknown config field")
        candidate = ChainConfig(**{**asdict(self), **changes})
        for name in changes:
            setattr(self, name, getattr(candidate, name))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChainConfig":
        known = {f.name for f in fields(cls)}
        unknown = [key for key in data if key not in known]
        if unknown:
            raise InvalidParamRange(unknown[0], data[unknown[0]], "unknown config field")
        return cls(**dict(data))

    @classmethod
    def from_env(cls) -> "ChainConfig":
        """
        Create config from environment variables.

        Environment Variables:
            FXCHAIN_CHANNELS: Channel count
            FXCHAIN_REAL_INPUT: Use live input (1/true/yes)
            FXCHAIN_NOISE: Synthetic source emits noise (1/true/yes)
            FXCHAIN_EQUAL_ENERGY: Equal-energy downmix (1/true/yes)
            FXCHAIN_SRC_AMP: Source amplitude
            FXCHAIN_DEST_AMP: Destination amplitude
            FXCHAIN_FADE_TIME: Commit crossfade in seconds
        """
        defaults = cls()
        try:
            return cls(
                channels=int(os.getenv("FXCHAIN_CHANNELS", defaults.channels)),
                real_input=_env_flag("FXCHAIN_REAL_INPUT", defaults.real_input),
                noise_source=_env_flag("FXCHAIN_NOISE", defaults.noise_source),
                equal_energy=_env_flag("FXCHAIN_EQUAL_ENERGY", defaults.equal_energy),
                src_amp=float(os.getenv("FXCHAIN_SRC_AMP", defaults.src_amp)),
                dest_amp=float(os.getenv("FXCHAIN_DEST_AMP", defaults.dest_amp)),
                fade_time=float(os.getenv("FXCHAIN_FADE_TIME", defaults.fade_time)),
            )
        except ValueError as e:
            raise InvalidParamRange("environment", str(e), "not a number") from e


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _check_channels(channels: Any) -> int:
    if isinstance(channels, bool) or not isinstance(channels, int):
        raise InvalidParamRange('channels', channels, "expected int")
    if not 1 <= channels <= MAX_CHANNELS:
        raise InvalidParamRange('channels', channels, f"must be in [1, {MAX_CHANNELS}]")
    return channels


def _check_range(name: str, value: Any, low: float, high: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParamRange(name, value, "expected a number")
    if not low <= value <= high:
        raise InvalidParamRange(name, value, f"must be in [{low}, {high}]")
    return float(value)
