"""
MIDI control-change mapping for live chains.

Binds MIDI CC numbers to stage parameters so a hardware controller can
drive a running chain. Incoming control changes are scaled into the
bound range and applied through Chain.set_fx / set_source / set_dest, so
they go through the same addressing and range checks as any other
parameter update.

Quick start::

    from fxchain.midi_control import MidiControlMap
    cc_map = MidiControlMap(chain)
    cc_map.bind(74, "y1", "freq", 200.0, 8000.0, curve="exp")
    cc_map.listen()             # first available MIDI input port
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

try:
    import mido  # type: ignore[import-untyped]

    MIDO_AVAILABLE = True
except ImportError:
    MIDO_AVAILABLE = False

from .engine import DestinationUnit, SourceUnit
from .errors import ChainError, InvalidParamRange

logger = logging.getLogger(__name__)

CURVES = ("linear", "exp")


@dataclass(frozen=True)
class CCBinding:
    """One CC number mapped onto one parameter."""
    control: int
    target: Any
    param: str
    low: float = 0.0
    high: float = 1.0
    curve: str = "linear"
    channel: Optional[int] = None  # None listens on every channel

    def __post_init__(self):
        if not 0 <= self.control <= 127:
            raise InvalidParamRange('control', self.control, "CC number must be 0-127")
        if self.curve not in CURVES:
            raise InvalidParamRange('curve', self.curve, f"must be one of {CURVES}")
        if self.curve == "exp" and (self.low <= 0 or self.high <= 0):
            raise InvalidParamRange('low', self.low, "exp curve needs positive bounds")
        if self.channel is not None and not 0 <= self.channel <= 15:
            raise InvalidParamRange('channel', self.channel, "MIDI channel must be 0-15")

    def scale(self, value: int) -> float:
        """Map a 0-127 CC value into [low, high]."""
        t = min(max(value, 0), 127) / 127.0
        if self.curve == "exp":
            return self.low * math.exp(t * math.log(self.high / self.low))
        return self.low + t * (self.high - self.low)

    def matches(self, control: int, channel: int) -> bool:
        return self.control == control and (self.channel is None or self.channel == channel)


class MidiControlMap:
    """
    Routes MIDI control changes to a chain's live parameters.

    Targets are stage references (position or id) or the fixed
    "src" / "dest" namespaces.
    """

    def __init__(self, chain) -> None:
        self.chain = chain
        self._bindings: List[CCBinding] = []
        self._port = None

    @property
    def bindings(self) -> List[CCBinding]:
        return list(self._bindings)

    def bind(self, control: int, target: Any, param: str, low: float = 0.0,
             high: float = 1.0, curve: str = "linear",
             channel: Optional[int] = None) -> CCBinding:
        binding = CCBinding(control, target, param, low, high, curve, channel)
        self._bindings.append(binding)
        logger.debug("Bound CC %d -> %s.%s", control, target, param)
        return binding

    def unbind(self, control: int) -> int:
        """Drop every binding for a CC number; returns how many were removed."""
        before = len(self._bindings)
        self._bindings = [b for b in self._bindings if b.control != control]
        return before - len(self._bindings)

    def _apply(self, binding: CCBinding, value: float) -> Dict[str, float]:
        params = {binding.param: value}
        if binding.target == SourceUnit.NAMESPACE:
            return self.chain.set_source(params)
        if binding.target == DestinationUnit.NAMESPACE:
            return self.chain.set_dest(params)
        return self.chain.set_fx(binding.target, params)

    def handle(self, message: Any) -> Dict[str, float]:
        """
        Apply one incoming MIDI message.

        Non-CC messages are ignored. A binding whose target no longer
        exists (e.g. after a stage was removed) is logged and skipped.

        Returns:
            Mapping of control name -> value for every update applied
        """
        if getattr(message, 'type', None) != 'control_change':
            return {}
        applied: Dict[str, float] = {}
        for binding in self._bindings:
            if not binding.matches(message.control, message.channel):
                continue
            try:
                applied.update(self._apply(binding, binding.scale(message.value)))
            except ChainError as e:
                logger.warning("CC %d -> %s.%s not applied: %s",
                               binding.control, binding.target, binding.param, e)
        return applied

    # ------------------------------------------------------------------
    # Port management
    # ------------------------------------------------------------------

    @staticmethod
    def list_input_ports() -> List[str]:
        _require_mido()
        return list(mido.get_input_names())

    def listen(self, port_name: Optional[str] = None) -> str:
        """Open a MIDI input port and route its messages to handle()."""
        _require_mido()
        self.close()
        names = mido.get_input_names()
        if port_name is None:
            if not names:
                raise OSError("No MIDI input ports available")
            port_name = names[0]
        self._port = mido.open_input(port_name, callback=self.handle)
        logger.info("Listening for MIDI control changes on '%s'", port_name)
        return port_name

    def close(self) -> None:
        if self._port is not None:
            self._port.close()
            logger.info("Closed MIDI input port")
            self._port = None


def control_change(control: int, value: int, channel: int = 0) -> Any:
    """Build a control_change message (handy for tests and scripting)."""
    _require_mido()
    return mido.Message('control_change', control=control, value=value, channel=channel)


def _require_mido() -> None:
    if not MIDO_AVAILABLE:
        raise ImportError(
            "mido is required for MIDI control.\n"
            "Install it with:  pip install mido"
        )
