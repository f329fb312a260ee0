"""
fxchain - live, addressable audio effect chains

Builds a linear effect chain (source -> stages -> destination) from a
declarative spec, assigns each stage a collision-free control namespace,
and keeps the chain addressable by position or stable id while stages
are inserted, removed and moved on a running pipeline. Every build or
edit commits completely or not at all.
"""

__version__ = "0.1.0"

from .errors import (
    ChainError,
    EmptySpec,
    BadSource,
    BadDestination,
    UnknownEffect,
    DuplicateId,
    StageNotFound,
    UnknownControl,
    BuilderFailed,
    InvalidParamRange,
    ChainNotBuilt,
    ChainBusy,
    ConfigLoadError,
)
from .spec import (
    SOURCE_TAG,
    DestinationKind,
    StageDescriptor,
    ChainSpec,
    parse_spec,
)
from .params import ParamSpec, ParamSchema
from .engine import (
    Control,
    ProcessingUnit,
    Pipeline,
    AudioEngine,
    BlockEngine,
)
from .catalog import (
    EffectBuilder,
    FunctionBuilder,
    EffectCatalog,
    create_catalog,
    get_default_catalog,
)
from .validator import validate, check, is_valid
from .registry import AddressEntry, AddressRegistry
from .routing import (
    BlendPolicy,
    DestinationPlan,
    DownmixStrategy,
    resolve_destination,
)
from .config import ChainConfig
from .config_loader import ChainFile, ChainFileLoader
from .chain import Chain, ChainStatus
from .presets import get_preset, list_presets

__all__ = [
    # Errors
    "ChainError",
    "EmptySpec",
    "BadSource",
    "BadDestination",
    "UnknownEffect",
    "DuplicateId",
    "StageNotFound",
    "UnknownControl",
    "BuilderFailed",
    "InvalidParamRange",
    "ChainNotBuilt",
    "ChainBusy",
    "ConfigLoadError",
    # Spec
    "SOURCE_TAG",
    "DestinationKind",
    "StageDescriptor",
    "ChainSpec",
    "parse_spec",
    "ParamSpec",
    "ParamSchema",
    # Engine
    "Control",
    "ProcessingUnit",
    "Pipeline",
    "AudioEngine",
    "BlockEngine",
    # Catalog
    "EffectBuilder",
    "FunctionBuilder",
    "EffectCatalog",
    "create_catalog",
    "get_default_catalog",
    # Validation / addressing / routing
    "validate",
    "check",
    "is_valid",
    "AddressEntry",
    "AddressRegistry",
    "BlendPolicy",
    "DestinationPlan",
    "DownmixStrategy",
    "resolve_destination",
    # Chain
    "ChainConfig",
    "ChainFile",
    "ChainFileLoader",
    "Chain",
    "ChainStatus",
    "get_preset",
    "list_presets",
]
