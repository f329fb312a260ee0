"""
Error types for chain validation, building and editing.

Every failure is reported as a single structured exception naming the
offending stage or field. All of them derive from ChainError so callers
can catch the family with one handler.
"""

from typing import Any, Dict, Optional


class ChainError(Exception):
    """Base class for all chain errors."""

    kind = "ChainError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.kind, 'message': self.message}


class EmptySpec(ChainError):
    kind = "EmptySpec"

    def __init__(self):
        super().__init__("Chain spec is empty")


class BadSource(ChainError):
    kind = "BadSource"

    def __init__(self, found: Any):
        super().__init__(f"Chain spec must start with the source tag, got {found!r}")
        self.found = found


class BadDestination(ChainError):
    kind = "BadDestination"

    def __init__(self, found: Any):
        super().__init__(f"Chain spec must end with a destination tag, got {found!r}")
        self.found = found


class UnknownEffect(ChainError):
    kind = "UnknownEffect"

    def __init__(self, effect_kind: Any, position: Optional[int] = None):
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Unknown effect kind {effect_kind!r}{where}")
        self.effect_kind = effect_kind
        self.position = position

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['effect_kind'] = self.effect_kind
        data['position'] = self.position
        return data


class DuplicateId(ChainError):
    kind = "DuplicateId"

    def __init__(self, stage_id: Any):
        super().__init__(f"Stage identifier {stage_id!r} is used more than once")
        self.stage_id = stage_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['id'] = str(self.stage_id)
        return data


class StageNotFound(ChainError):
    kind = "StageNotFound"

    def __init__(self, which: Any):
        super().__init__(f"No stage matches {which!r}")
        self.which = which

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['which'] = self.which if isinstance(self.which, int) else str(self.which)
        return data


class UnknownControl(StageNotFound):
    """A control name that no stage (or source/destination) exposes."""

    kind = "UnknownControl"

    def __init__(self, control: str):
        ChainError.__init__(self, f"No live control named {control!r}")
        self.which = control


class BuilderFailed(ChainError):
    kind = "BuilderFailed"

    def __init__(self, effect_kind: str, cause: BaseException):
        super().__init__(f"Builder for {effect_kind!r} failed: {cause}")
        self.effect_kind = effect_kind
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['effect_kind'] = self.effect_kind
        data['cause'] = str(self.cause)
        return data


class InvalidParamRange(ChainError):
    kind = "InvalidParamRange"

    def __init__(self, field: str, value: Any, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid value {value!r} for {field!r}{detail}")
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['field'] = self.field
        data['value'] = self.value
        return data


class ChainNotBuilt(ChainError):
    kind = "ChainNotBuilt"

    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: no chain has been built yet")
        self.operation = operation


class ChainBusy(ChainError):
    kind = "ChainBusy"

    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: another structural edit is in progress")
        self.operation = operation


class ConfigLoadError(ChainError):
    """Raised when a chain file cannot be loaded or parsed."""

    kind = "ConfigLoadError"
