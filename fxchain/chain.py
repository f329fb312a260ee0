"""
Chain runtime: build, edit and address a live effect chain.

A Chain owns one committed spec, the addressing registry computed from
it and the handle of the pipeline that is live on the engine. Every
structural operation (build, insert, remove, move) computes a complete
new spec and runs the whole build again; the new pipeline, spec and
registry replace the old ones together, or not at all.

Parameter updates bypass the build: they are resolved through the
registry to a namespaced control and sent straight to the engine.

Usage:
    from fxchain import Chain

    chain = Chain()
    chain.build(["in", ("crush", {"id": "x1", "rate": 8}),
                 ("lpf", {"id": "y1", "freq": 500}), "stereo"])
    chain.play()
    chain.set_fx("y1", {"freq": 2000})
    chain.move_stage("y1", 0)
    chain.remove_stage("x1")
    print(chain.status().to_dict())
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .catalog import EffectCatalog, get_default_catalog
from .config import MAX_AMP, ChainConfig
from .engine import (
    AudioEngine,
    BlockEngine,
    DestinationUnit,
    InputSource,
    NoiseSource,
    Pipeline,
    SourceUnit,
    UnitPrepareError,
)
from .errors import (
    BuilderFailed,
    ChainBusy,
    ChainError,
    ChainNotBuilt,
    InvalidParamRange,
    UnknownControl,
)
from .params import ParamSchema, ParamSpec
from .registry import AddressRegistry
from .routing import DestinationPlan, resolve_destination
from .spec import ChainSpec, StageDescriptor
from .validator import validate

logger = logging.getLogger(__name__)

# Controls owned by the fixed source and destination namespaces
SOURCE_SCHEMA = ParamSchema.of(ParamSpec('amp', 1.0, 0.0, MAX_AMP, doc="Source amplitude"))
DEST_SCHEMA = ParamSchema.of(ParamSpec('amp', 1.0, 0.0, MAX_AMP, doc="Destination amplitude"))


@dataclass(frozen=True)
class ChainStatus:
    """Read-only snapshot of a chain."""
    built: bool
    playing: bool
    spec: List[Any] = field(default_factory=list)
    entries: List[Dict[str, Any]] = field(default_factory=list)
    channels: int = 0
    input_channels: int = 0
    output_channels: int = 0
    engine_output_channels: int = 0
    real_input: bool = True
    equal_energy: bool = True
    destination: Optional[Dict[str, Any]] = None
    source: str = ""

    @property
    def prefixes(self) -> List[str]:
        return [entry['prefix'] for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'built': self.built,
            'playing': self.playing,
            'spec': [_jsonable(item) for item in self.spec],
            'entries': [dict(entry) for entry in self.entries],
            'channels': self.channels,
            'input_channels': self.input_channels,
            'output_channels': self.output_channels,
            'engine_output_channels': self.engine_output_channels,
            'real_input': self.real_input,
            'equal_energy': self.equal_energy,
            'destination': dict(self.destination) if self.destination else None,
            'source': self.source,
        }


@dataclass(frozen=True)
class _Committed:
    """Everything a commit replaces, swapped in as one reference."""
    spec: ChainSpec
    registry: AddressRegistry
    pipeline: Pipeline
    plan: DestinationPlan


_EMPTY_REGISTRY = AddressRegistry()


def _jsonable(item: Any) -> Any:
    if isinstance(item, tuple):
        return [_jsonable(part) for part in item]
    if isinstance(item, Mapping):
        return {str(key): value for key, value in item.items()}
    return item


class Chain:
    """
    A named, editable, linear effect chain running on an audio engine.

    Structural operations are serialized: a structural call made while
    another one is still running on the same chain raises ChainBusy
    instead of waiting. Parameter updates never take that lock.

    Args:
        config: Chain configuration (channels, source mode, amps, fade time)
        catalog: Effect catalog to build stages from; shared default if omitted
        engine: Audio engine to commit pipelines to; a BlockEngine if omitted
        name: Label used in log messages
    """

    def __init__(self, config: Optional[ChainConfig] = None,
                 catalog: Optional[EffectCatalog] = None,
                 engine: Optional[AudioEngine] = None,
                 name: str = "chain"):
        self.name = name
        self.config = config or ChainConfig()
        self.catalog = catalog if catalog is not None else get_default_catalog()
        self.engine = engine if engine is not None else BlockEngine(
            output_channels=max(2, self.config.channels),
            input_channels=self.config.channels,
        )
        self._structural_lock = threading.Lock()
        self._state: Optional[_Committed] = None

    def __repr__(self) -> str:
        return f"Chain({self.name!r}, stages={len(self.registry)})"

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def spec(self) -> Optional[ChainSpec]:
        return self._state.spec if self._state else None

    @property
    def registry(self) -> AddressRegistry:
        return self._state.registry if self._state else _EMPTY_REGISTRY

    @property
    def pipeline(self) -> Optional[Pipeline]:
        return self._state.pipeline if self._state else None

    @property
    def is_built(self) -> bool:
        return self._state is not None

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @contextmanager
    def _structural_edit(self, operation: str) -> Iterator[None]:
        if not self._structural_lock.acquire(blocking=False):
            raise ChainBusy(operation)
        try:
            yield
        finally:
            self._structural_lock.release()

    def build(self, spec: Any) -> ChainStatus:
        """
        Validate a spec, build its pipeline and commit it.

        Raises:
            EmptySpec, BadSource, BadDestination, UnknownEffect, DuplicateId:
                the spec is invalid; nothing was touched
            BuilderFailed: a stage could not be built; the old chain stays live
        """
        with self._structural_edit("build"):
            self._build(spec)
        return self.status()

    def rebuild(self) -> ChainStatus:
        """Build the committed spec again (picks up configuration changes)."""
        spec = self._require_spec("rebuild")
        return self.build(spec)

    def _build(self, spec: Any) -> None:
        try:
            parsed = validate(spec, self.catalog)
        except ChainError as e:
            logger.warning("[%s] Rejected chain spec: %s", self.name, e)
            raise

        registry = AddressRegistry.from_spec(parsed)
        try:
            pipeline, plan = self._assemble(parsed, registry)
        except ChainError as e:
            logger.warning("[%s] Build failed, keeping previous chain: %s", self.name, e)
            raise

        self._commit(parsed, registry, pipeline, plan)

    def _assemble(self, spec: ChainSpec,
                  registry: AddressRegistry) -> Tuple[Pipeline, DestinationPlan]:
        source = self._make_source()
        units = []
        kinds = {}
        for stage, entry in zip(spec.stages, registry):
            unit = self.catalog.instantiate(stage.kind, entry.prefix, stage.params)
            kinds[id(unit)] = stage.kind
            units.append(unit)

        plan = resolve_destination(
            spec.destination,
            channels=self.config.channels,
            engine_output_channels=self.engine.output_channels,
            equal_energy=self.config.equal_energy,
            blend=self.config.blend,
        )
        destination = DestinationUnit(plan.matrix, amp=self.config.dest_amp,
                                      kind=plan.kind.value)
        try:
            pipeline = Pipeline(source, units, destination)
        except ValueError as e:
            raise BuilderFailed("pipeline", e) from e
        # Prepared here so unit failures surface before anything is committed
        try:
            pipeline.prepare(self.engine.sample_rate)
        except UnitPrepareError as e:
            raise BuilderFailed(kinds.get(id(e.unit), e.unit.prefix), e.cause) from e
        return pipeline, plan

    def _make_source(self) -> SourceUnit:
        if self.config.real_input:
            return InputSource(self.config.channels, amp=self.config.src_amp)
        return NoiseSource(self.config.channels, amp=self.config.src_amp,
                           noise=self.config.noise_source)

    def _commit(self, spec: ChainSpec, registry: AddressRegistry,
                pipeline: Pipeline, plan: DestinationPlan) -> None:
        """Swap the new pipeline in, then publish its spec and registry."""
        self.engine.commit(pipeline, self.config.fade_time)
        self._state = _Committed(spec, registry, pipeline, plan)
        logger.info("[%s] Committed %d stage(s): %s", self.name, len(registry),
                    ", ".join(registry.prefixes()) or "(empty)")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self, offset: int = 0) -> ChainStatus:
        """Start output, writing from engine output channel ``offset``."""
        self._require_spec("play")
        try:
            self.engine.start(offset)
        except ValueError as e:
            raise InvalidParamRange('offset', offset, str(e)) from e
        return self.status()

    def stop(self) -> ChainStatus:
        self.engine.stop()
        return self.status()

    def free(self) -> ChainStatus:
        """Release the live pipeline and forget the committed spec."""
        with self._structural_edit("free"):
            self.engine.free()
            self._state = None
        logger.info("[%s] Freed", self.name)
        return self.status()

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def _require_spec(self, operation: str) -> ChainSpec:
        if self._state is None:
            raise ChainNotBuilt(operation)
        return self._state.spec

    def insert_stage(self, position: int, descriptor: Any) -> ChainStatus:
        """Insert a stage at ``position`` (clamped to [0, len]); later stages shift right."""
        with self._structural_edit("insert stage"):
            spec = self._require_spec("insert stage")
            stage = StageDescriptor.from_item(descriptor)
            stages = list(spec.stages)
            index = _clamp(position, 0, len(stages))
            stages.insert(index, stage)
            logger.debug("[%s] Insert %r at %d", self.name, stage.kind, index)
            self._build(spec.with_stages(stages))
        return self.status()

    def remove_stage(self, which: Any) -> ChainStatus:
        """Remove the stage at a position or with an id, closing the gap."""
        with self._structural_edit("remove stage"):
            spec = self._require_spec("remove stage")
            entry = self.registry.resolve(which)
            stages = list(spec.stages)
            del stages[entry.position]
            logger.debug("[%s] Remove %r from %d", self.name, entry.prefix, entry.position)
            self._build(spec.with_stages(stages))
        return self.status()

    def move_stage(self, which: Any, new_position: int) -> ChainStatus:
        """Move a stage, keeping its id and parameters."""
        with self._structural_edit("move stage"):
            spec = self._require_spec("move stage")
            entry = self.registry.resolve(which)
            stages = list(spec.stages)
            stage = stages.pop(entry.position)
            index = _clamp(new_position, 0, len(stages))
            stages.insert(index, stage)
            logger.debug("[%s] Move %r from %d to %d", self.name, entry.prefix,
                         entry.position, index)
            self._build(spec.with_stages(stages))
        return self.status()

    def replace_stage(self, which: Any, descriptor: Any) -> ChainStatus:
        """Swap the stage at a position or id for another descriptor."""
        with self._structural_edit("replace stage"):
            spec = self._require_spec("replace stage")
            entry = self.registry.resolve(which)
            stages = list(spec.stages)
            stages[entry.position] = StageDescriptor.from_item(descriptor)
            self._build(spec.with_stages(stages))
        return self.status()

    def reconfigure(self, **changes: Any) -> ChainStatus:
        """
        Change configuration and rebuild a built chain to apply it.

        If the rebuild fails the previous configuration is restored.
        """
        with self._structural_edit("reconfigure"):
            previous = self.config.to_dict()
            self.config.update(**changes)
            if self._state is not None:
                try:
                    self._build(self._state.spec)
                except ChainError:
                    self.config.update(**previous)
                    raise
        return self.status()

    # ------------------------------------------------------------------
    # Parameter routing
    # ------------------------------------------------------------------

    def _apply(self, namespace: str, schema: ParamSchema,
               params: Mapping[str, Any]) -> Dict[str, float]:
        updates: Dict[str, float] = {}
        for name, value in params.items():
            control = f"{namespace}_{name}"
            checked = schema.check(name, value, control)
            if not self.engine.has_control(control):
                raise UnknownControl(control)
            updates[control] = checked
        for control, value in updates.items():
            self.engine.set_control(control, value)
        return updates

    def set_fx(self, which: Any, params: Mapping[str, Any]) -> Dict[str, float]:
        """
        Update live controls of one stage.

        Every value is checked before any is applied. The spec and the
        registry are not changed.

        Returns:
            Mapping of full control name -> applied value
        """
        self._require_spec("set parameters")
        entry = self.registry.resolve(which)
        schema = self.catalog.schema(entry.kind)
        updates = self._apply(entry.prefix, schema, params)
        logger.debug("[%s] set %s", self.name, updates)
        return updates

    def set_source(self, params: Mapping[str, Any]) -> Dict[str, float]:
        self._require_spec("set source parameters")
        updates = self._apply(SourceUnit.NAMESPACE, SOURCE_SCHEMA, params)
        if 'amp' in params:
            self.config.set_src_amp(updates[f"{SourceUnit.NAMESPACE}_amp"])
        return updates

    def set_dest(self, params: Mapping[str, Any]) -> Dict[str, float]:
        self._require_spec("set destination parameters")
        updates = self._apply(DestinationUnit.NAMESPACE, DEST_SCHEMA, params)
        if 'amp' in params:
            self.config.set_dest_amp(updates[f"{DestinationUnit.NAMESPACE}_amp"])
        return updates

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> ChainStatus:
        state = self._state
        if state is None:
            return ChainStatus(
                built=False,
                playing=False,
                channels=self.config.channels,
                engine_output_channels=self.engine.output_channels,
                real_input=self.config.real_input,
                equal_energy=self.config.equal_energy,
            )
        plan = state.plan
        return ChainStatus(
            built=True,
            playing=bool(getattr(self.engine, "playing", False)),
            spec=state.spec.to_list(),
            entries=state.registry.to_list(),
            channels=self.config.channels,
            input_channels=self.engine.input_channels if self.config.real_input else 0,
            output_channels=plan.out_channels,
            engine_output_channels=self.engine.output_channels,
            real_input=self.config.real_input,
            equal_energy=self.config.equal_energy,
            destination=plan.to_dict(),
            source=getattr(state.pipeline.source, "kind", ""),
        )


def _clamp(position: Any, low: int, high: int) -> int:
    if isinstance(position, bool) or not isinstance(position, int):
        raise InvalidParamRange('position', position, "expected int")
    return max(low, min(position, high))
