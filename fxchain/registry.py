"""
Stage addressing registry.

Assigns every stage of a spec its position, control prefix and optional
id, and answers lookups in both directions. A registry is computed in one
pass from the full stage sequence and never edited afterwards; structural
edits produce a new registry, so no entry can outlive its position.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import StageNotFound
from .spec import ChainSpec, StageDescriptor, canonical_id
from .validator import generated_prefix


@dataclass(frozen=True)
class AddressEntry:
    """Where one stage lives in a committed chain."""
    position: int
    prefix: str
    id: Optional[str] = None
    kind: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'prefix': self.prefix,
            'id': self.id,
            'kind': self.kind,
        }


class AddressRegistry:
    """
    Two views over the same entries: by position and by id.

    Usage:
        registry = AddressRegistry.from_spec(spec)
        registry.prefix_at(0)        # "x1" or "fx0"
        registry.position_of("x1")   # 0
        registry.resolve("x1")       # AddressEntry(...)
    """

    def __init__(self, entries: Sequence[AddressEntry] = ()):
        self._by_position: Tuple[AddressEntry, ...] = tuple(entries)
        self._by_id: Dict[str, AddressEntry] = {}
        self._by_prefix: Dict[str, AddressEntry] = {}
        for index, entry in enumerate(self._by_position):
            if entry.position != index:
                raise ValueError(f"Entry positions must be dense, got {entry.position} at {index}")
            if entry.prefix in self._by_prefix:
                raise ValueError(f"Duplicate prefix {entry.prefix!r}")
            self._by_prefix[entry.prefix] = entry
            if entry.id is not None:
                if entry.id in self._by_id:
                    raise ValueError(f"Duplicate id {entry.id!r}")
                self._by_id[entry.id] = entry

    @classmethod
    def from_stages(cls, stages: Sequence[StageDescriptor]) -> 'AddressRegistry':
        entries = []
        for position, stage in enumerate(stages):
            key = stage.key
            prefix = key if key is not None else generated_prefix(position)
            entries.append(AddressEntry(position, prefix, key, stage.kind))
        return cls(entries)

    @classmethod
    def from_spec(cls, spec: ChainSpec) -> 'AddressRegistry':
        return cls.from_stages(spec.stages)

    def __len__(self) -> int:
        return len(self._by_position)

    def __iter__(self) -> Iterator[AddressEntry]:
        return iter(self._by_position)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddressRegistry):
            return NotImplemented
        return self._by_position == other._by_position

    def __repr__(self) -> str:
        return f"AddressRegistry({list(self._by_position)!r})"

    def all_entries(self) -> List[AddressEntry]:
        return list(self._by_position)

    def prefix_at(self, position: int) -> str:
        return self.resolve(position).prefix

    def position_of(self, stage_id: Any) -> int:
        entry = self._by_id.get(canonical_id(stage_id))
        if entry is None:
            raise StageNotFound(stage_id)
        return entry.position

    def entry_of(self, which: Any) -> Optional[AddressEntry]:
        """
        Look up a stage by position (int) or id.

        A string that is not a known id but matches a generated prefix
        (e.g. "fx2") also resolves.
        """
        if isinstance(which, bool):
            return None
        if isinstance(which, int):
            if 0 <= which < len(self._by_position):
                return self._by_position[which]
            return None
        key = canonical_id(which)
        if key is None:
            return None
        return self._by_id.get(key) or self._by_prefix.get(key)

    def resolve(self, which: Any) -> AddressEntry:
        """Like entry_of(), but raise StageNotFound when nothing matches."""
        entry = self.entry_of(which)
        if entry is None:
            raise StageNotFound(which)
        return entry

    def prefixes(self) -> List[str]:
        return [entry.prefix for entry in self._by_position]

    def ids(self) -> List[Optional[str]]:
        return [entry.id for entry in self._by_position]

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._by_position]
