"""
Declared parameter schemas for effect kinds.

Each effect kind declares its parameters (name, type, default, valid
range). Parameter bags are resolved against the schema when a stage is
built and when a live control is updated: missing keys fall back to the
declared default, out-of-range or unknown keys raise InvalidParamRange.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import InvalidParamRange


@dataclass(frozen=True)
class ParamSpec:
    """A single declared parameter."""
    name: str
    default: float
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    type: type = float
    doc: str = ""

    def coerce(self, value: Any, field_name: Optional[str] = None) -> Any:
        """Convert and range-check a value for this parameter."""
        label = field_name or self.name
        if isinstance(value, bool) and self.type is not bool:
            raise InvalidParamRange(label, value, f"expected {self.type.__name__}")
        try:
            coerced = self.type(value)
        except (TypeError, ValueError):
            raise InvalidParamRange(label, value, f"expected {self.type.__name__}")
        if self.min_value is not None and coerced < self.min_value:
            raise InvalidParamRange(label, value, f"below minimum {self.min_value}")
        if self.max_value is not None and coerced > self.max_value:
            raise InvalidParamRange(label, value, f"above maximum {self.max_value}")
        return coerced

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type.__name__,
            'default': self.default,
            'min': self.min_value,
            'max': self.max_value,
            'doc': self.doc,
        }


@dataclass(frozen=True)
class ParamSchema:
    """Ordered collection of ParamSpecs for one effect kind."""
    params: Tuple[ParamSpec, ...] = ()
    strict: bool = True  # reject names not declared in the schema

    def __post_init__(self):
        object.__setattr__(self, 'params', tuple(self.params))

    @classmethod
    def of(cls, *params: ParamSpec, strict: bool = True) -> 'ParamSchema':
        return cls(params=params, strict=strict)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def get(self, name: str) -> Optional[ParamSpec]:
        for spec in self.params:
            if spec.name == name:
                return spec
        return None

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self.params]

    def defaults(self) -> Dict[str, Any]:
        return {spec.name: spec.default for spec in self.params}

    def check(self, name: str, value: Any, field_name: Optional[str] = None) -> Any:
        """Validate one value; undeclared names pass through only for loose schemas."""
        spec = self.get(name)
        if spec is None:
            if self.strict:
                raise InvalidParamRange(field_name or name, value, "unknown parameter")
            return value
        return spec.coerce(value, field_name)

    def resolve(self, params: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
        """
        Fill defaults and validate a full parameter bag.

        Args:
            params: user-supplied values (may be partial)
            prefix: stage prefix, only used to name the field in errors

        Returns:
            Dict with one entry per declared parameter, plus any undeclared
            entries when the schema is not strict.
        """
        resolved = self.defaults()
        for name, value in params.items():
            field_name = f"{prefix}_{name}" if prefix else name
            resolved[name] = self.check(name, value, field_name)
        return resolved

    def to_list(self) -> List[Dict[str, Any]]:
        return [spec.to_dict() for spec in self.params]


# Schema used for builders registered without one
LOOSE_SCHEMA = ParamSchema(params=(), strict=False)


def merge_schemas(schemas: Iterable[ParamSchema]) -> ParamSchema:
    """Combine schemas, later declarations winning on name clashes."""
    by_name: Dict[str, ParamSpec] = {}
    strict = True
    for schema in schemas:
        strict = strict and schema.strict
        for spec in schema.params:
            by_name[spec.name] = spec
    return ParamSchema(params=tuple(by_name.values()), strict=strict)
