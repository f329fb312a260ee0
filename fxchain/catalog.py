"""Effect catalog: effect kind -> builder capability."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from .engine import ProcessingUnit
from .errors import BuilderFailed, UnknownEffect
from .params import LOOSE_SCHEMA, ParamSchema

logger = logging.getLogger(__name__)


class EffectBuilder(ABC):
    """
    Capability that turns a prefix and a parameter bag into a processing unit.

    Builders must be deterministic in which controls they expose for a
    given prefix: every control is named ``{prefix}_{param}``.
    """

    schema: ParamSchema = LOOSE_SCHEMA
    description: str = ""

    @abstractmethod
    def build(self, prefix: str, params: Mapping[str, Any]) -> ProcessingUnit:
        """Create a fresh unit for one stage."""
        pass

    def get_info(self) -> Dict[str, Any]:
        return {
            'description': self.description,
            'params': self.schema.to_list(),
            'strict': self.schema.strict,
        }


class UnitClassBuilder(EffectBuilder):
    """Builder for a ProcessingUnit subclass taking (prefix, params)."""

    def __init__(self, unit_class: Type[ProcessingUnit], schema: Optional[ParamSchema] = None):
        self.unit_class = unit_class
        self.schema = schema or getattr(unit_class, 'schema', LOOSE_SCHEMA)
        self.description = (unit_class.__doc__ or "").strip().splitlines()[0] if unit_class.__doc__ else ""

    def build(self, prefix: str, params: Mapping[str, Any]) -> ProcessingUnit:
        return self.unit_class(prefix, params)


class FunctionBuilder(EffectBuilder):
    """Wraps a plain ``fn(prefix, params) -> ProcessingUnit`` callable."""

    def __init__(self, fn: Callable[[str, Mapping[str, Any]], ProcessingUnit],
                 schema: Optional[ParamSchema] = None, description: str = ""):
        self.fn = fn
        self.schema = schema or LOOSE_SCHEMA
        self.description = description or (fn.__doc__ or "").strip()

    def build(self, prefix: str, params: Mapping[str, Any]) -> ProcessingUnit:
        return self.fn(prefix, params)


BuilderLike = Union[EffectBuilder, Callable[[str, Mapping[str, Any]], ProcessingUnit]]


class EffectCatalog:
    """
    Mapping from effect kind to builder.

    Append-only during a session: kinds may be added at any time, and an
    existing kind is only replaced when asked to explicitly. A catalog may
    be shared by any number of chains; they only read from it.

    Usage:
        catalog = EffectCatalog()
        catalog.register("lpf", LowPass)
        catalog.has("lpf")        # True
        unit = catalog.instantiate("lpf", "fx0", {"freq": 800})
    """

    def __init__(self) -> None:
        self._builders: Dict[str, EffectBuilder] = {}
        self._lock = threading.Lock()

    def __contains__(self, kind: Any) -> bool:
        return self.has(kind)

    def __len__(self) -> int:
        return len(self._builders)

    def register(self, kind: str, builder: BuilderLike, replace: bool = False) -> bool:
        """
        Register a builder for an effect kind.

        Args:
            kind: Effect kind identifier used in chain specs
            builder: EffectBuilder, ProcessingUnit subclass, or plain callable
            replace: Allow replacing an existing registration

        Returns:
            True if registered, False if the kind already existed
        """
        if not isinstance(kind, str) or not kind:
            raise ValueError(f"Effect kind must be a non-empty string, got {kind!r}")
        wrapped = self._wrap(builder)
        with self._lock:
            if kind in self._builders and not replace:
                logger.warning("Effect kind %r already registered", kind)
                return False
            self._builders[kind] = wrapped
        logger.debug("Registered effect kind %r", kind)
        return True

    @staticmethod
    def _wrap(builder: BuilderLike) -> EffectBuilder:
        if isinstance(builder, EffectBuilder):
            return builder
        if isinstance(builder, type) and issubclass(builder, ProcessingUnit):
            return UnitClassBuilder(builder)
        if callable(builder):
            return FunctionBuilder(builder)
        raise TypeError(f"Not a builder: {builder!r}")

    def has(self, kind: Any) -> bool:
        try:
            return kind in self._builders
        except TypeError:
            return False

    def list(self) -> List[str]:
        return sorted(self._builders)

    def get(self, kind: str) -> EffectBuilder:
        try:
            return self._builders[kind]
        except (KeyError, TypeError):
            raise UnknownEffect(kind)

    def schema(self, kind: str) -> ParamSchema:
        return self.get(kind).schema

    def describe(self) -> Dict[str, Dict[str, Any]]:
        return {kind: self._builders[kind].get_info() for kind in self.list()}

    def instantiate(self, kind: str, prefix: str, params: Mapping[str, Any]) -> ProcessingUnit:
        """
        Resolve params against the kind's schema and invoke its builder.

        Raises:
            UnknownEffect: kind is not registered
            BuilderFailed: params out of range, or the builder raised
        """
        builder = self.get(kind)
        try:
            resolved = builder.schema.resolve(params, prefix)
            unit = builder.build(prefix, resolved)
        except Exception as e:
            raise BuilderFailed(kind, e) from e
        if not isinstance(unit, ProcessingUnit):
            raise BuilderFailed(kind, TypeError(f"builder returned {type(unit).__name__}"))
        bad = [name for name in unit.controls if not name.startswith(prefix + "_")]
        if bad:
            raise BuilderFailed(kind, ValueError(f"controls outside prefix {prefix!r}: {bad}"))
        return unit


def create_catalog(include_builtins: bool = True) -> EffectCatalog:
    """Create a new catalog, optionally preloaded with the built-in effects."""
    catalog = EffectCatalog()
    if include_builtins:
        from .effects import BUILTIN_EFFECTS
        for kind, effect_class in BUILTIN_EFFECTS.items():
            catalog.register(kind, effect_class)
    return catalog


_default_catalog: Optional[EffectCatalog] = None


def get_default_catalog() -> EffectCatalog:
    """Shared catalog with the built-in effects (created on first call)."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = create_catalog()
    return _default_catalog


def reset_default_catalog() -> None:
    """Drop the shared catalog (mainly for testing)."""
    global _default_catalog
    _default_catalog = None
