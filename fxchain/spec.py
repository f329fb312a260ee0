"""
Chain specification data model.

A chain spec is an ordered sequence: a source tag, zero or more effect
stages, and a destination tag. Externally it is written as a plain list:

    ["in", "lpf", ("crush", {"id": "x1", "rate": 8}), "stereo"]

Interior elements are either a bare effect kind, a (kind, params) pair
whose params may carry a reserved "id" key, a mapping with a "kind" key,
or an already-built StageDescriptor.

Descriptors and specs are immutable; edits always produce new objects.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

# Reserved tags
SOURCE_TAG = "in"
ID_KEY = "id"


class DestinationKind(Enum):
    """Closed set of destination kinds a chain can end with."""
    MULTICHANNEL = "out"
    STEREO = "stereo"

    @classmethod
    def from_tag(cls, tag: Any) -> Optional['DestinationKind']:
        for member in cls:
            if member.value == tag:
                return member
        return None


DESTINATION_TAGS = tuple(member.value for member in DestinationKind)


def canonical_id(stage_id: Any) -> Optional[str]:
    """Return the canonical string form of a stage id, or None if unset."""
    if stage_id is None:
        return None
    text = str(stage_id)
    return text or None


@dataclass(frozen=True)
class StageDescriptor:
    """One effect stage: kind, optional stable id, and its parameter bag."""
    kind: str
    id: Optional[Any] = None
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'params', MappingProxyType(dict(self.params)))

    @property
    def key(self) -> Optional[str]:
        """Canonical identifier string (None when no id was given)."""
        return canonical_id(self.id)

    def with_params(self, **params: Any) -> 'StageDescriptor':
        merged = dict(self.params)
        merged.update(params)
        return replace(self, params=merged)

    def to_item(self) -> Any:
        """External form: bare kind, or (kind, params-with-id)."""
        if self.key is None and not self.params:
            return self.kind
        bag: Dict[str, Any] = {}
        if self.key is not None:
            bag[ID_KEY] = self.id
        bag.update(self.params)
        return (self.kind, bag)

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind, 'id': self.id, 'params': dict(self.params)}

    @classmethod
    def from_item(cls, item: Any) -> 'StageDescriptor':
        """Parse one interior element of the external spec form."""
        if isinstance(item, StageDescriptor):
            return item
        if isinstance(item, str):
            return cls(kind=item)
        if isinstance(item, Mapping):
            bag = dict(item)
            # A missing kind is left as None for the validator to report
            kind = bag.pop('kind', None)
            stage_id = bag.pop(ID_KEY, None)
            nested = bag.pop('params', None)
            if isinstance(nested, Mapping):
                bag.update(nested)
            return cls(kind=kind, id=stage_id, params=bag)
        if isinstance(item, (tuple, list)) and len(item) == 2 and isinstance(item[1], Mapping):
            bag = dict(item[1])
            stage_id = bag.pop(ID_KEY, None)
            return cls(kind=item[0], id=stage_id, params=bag)
        if isinstance(item, (tuple, list)) and len(item) == 1:
            return cls(kind=item[0])
        # Leave anything else for the validator to reject as an unknown kind
        return cls(kind=item)


@dataclass(frozen=True)
class ChainSpec:
    """Source tag, ordered stages, destination tag."""
    source: Any = SOURCE_TAG
    stages: Tuple[StageDescriptor, ...] = ()
    destination: Any = DestinationKind.STEREO.value
    empty: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'stages', tuple(self.stages))

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def destination_kind(self) -> Optional[DestinationKind]:
        return DestinationKind.from_tag(self.destination)

    def with_stages(self, stages: Sequence[StageDescriptor]) -> 'ChainSpec':
        return replace(self, stages=tuple(stages))

    def to_list(self) -> List[Any]:
        if self.empty:
            return []
        return [self.source] + [stage.to_item() for stage in self.stages] + [self.destination]


def parse_spec(spec: Any) -> ChainSpec:
    """
    Convert the external list form into a ChainSpec.

    Structural problems (missing tags, unknown kinds) are not raised here;
    they are left in the returned spec for validate() to report in order.
    A ChainSpec passes through unchanged.
    """
    if isinstance(spec, ChainSpec):
        return spec
    items = list(spec or [])
    if not items:
        return ChainSpec(source=None, stages=(), destination=None, empty=True)
    if len(items) == 1:
        return ChainSpec(source=items[0], stages=(), destination=None)
    stages = tuple(StageDescriptor.from_item(item) for item in items[1:-1])
    return ChainSpec(source=items[0], stages=stages, destination=items[-1])
