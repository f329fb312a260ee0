"""
Chain spec validation.

Validation is a pure function of a spec and a catalog snapshot. It never
touches a live pipeline, so it can run before any mutation and be called
from anywhere (editors, file loaders, tests).
"""

from typing import Any, Optional, Set

from .catalog import EffectCatalog
from .errors import (
    BadDestination,
    BadSource,
    ChainError,
    DuplicateId,
    EmptySpec,
    UnknownEffect,
)
from .engine import DestinationUnit, SourceUnit
from .spec import SOURCE_TAG, ChainSpec, DestinationKind, parse_spec

# Namespaces owned by the source and destination units
RESERVED_NAMESPACES = (SourceUnit.NAMESPACE, DestinationUnit.NAMESPACE)


def generated_prefix(position: int) -> str:
    """Prefix for a stage that has no user-supplied id."""
    return f"fx{position}"


def validate(spec: Any, catalog: EffectCatalog) -> ChainSpec:
    """
    Check a spec, raising the first violation found.

    Checks, in order: non-empty, source tag, destination tag, every
    stage kind registered, no duplicate ids.

    Args:
        spec: ChainSpec or the external list form
        catalog: Catalog the stage kinds are looked up in

    Returns:
        The parsed ChainSpec

    Raises:
        EmptySpec, BadSource, BadDestination, UnknownEffect, DuplicateId
    """
    parsed = parse_spec(spec)

    if parsed.empty:
        raise EmptySpec()
    if parsed.source != SOURCE_TAG:
        raise BadSource(parsed.source)
    if DestinationKind.from_tag(parsed.destination) is None:
        raise BadDestination(parsed.destination)

    for position, stage in enumerate(parsed.stages):
        if not catalog.has(stage.kind):
            raise UnknownEffect(stage.kind, position)

    seen: Set[str] = set()
    for stage in parsed.stages:
        if stage.key is None:
            continue
        if stage.key in seen or stage.key in RESERVED_NAMESPACES:
            raise DuplicateId(stage.id)
        seen.add(stage.key)

    # An explicit id may not shadow another stage's generated prefix
    for position, stage in enumerate(parsed.stages):
        if stage.key is None and generated_prefix(position) in seen:
            raise DuplicateId(generated_prefix(position))

    return parsed


def check(spec: Any, catalog: EffectCatalog) -> Optional[ChainError]:
    """Like validate(), but return the error instead of raising it."""
    try:
        validate(spec, catalog)
    except ChainError as e:
        return e
    return None


def is_valid(spec: Any, catalog: EffectCatalog) -> bool:
    return check(spec, catalog) is None
