"""
Loader for chain files.

A chain file describes one chain: an optional name, an optional config
block and the spec list. YAML and JSON are both accepted:

    name: lofi
    config:
      channels: 2
      real_input: false
      fade_time: 0.5
    spec:
      - in
      - {kind: crush, id: x1, rate: 8}
      - [lpf, {id: y1, freq: 500}]
      - stereo

Files are cached by path; call reload() after editing them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

import yaml
from pydantic import ValidationError

from .config import ChainConfig
from .errors import ConfigLoadError, InvalidParamRange
from .schemas import validate_chain_file

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")
_PARSE_ERRORS = (OSError, ValueError, yaml.YAMLError)


@dataclass
class ChainFile:
    """Parsed contents of a chain file."""
    name: str
    spec: List[Any]
    config: ChainConfig = field(default_factory=ChainConfig)
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'config': self.config.to_dict(),
            'spec': self.spec,
        }


class ChainFileLoader:
    """
    Loads chain files from YAML/JSON with caching.

    Attributes:
        chain_dir: Directory searched for chain files given by bare name
    """

    def __init__(self, chain_dir: Optional[Union[str, Path]] = None):
        self.chain_dir = Path(chain_dir) if chain_dir is not None else Path.cwd()
        self._cache: Dict[Path, ChainFile] = {}

    def _read(self, path: Path) -> Dict[str, Any]:
        """
        Read a YAML or JSON file into a dict.

        Raises:
            ConfigLoadError: If the file is missing or cannot be parsed
        """
        if not path.exists():
            raise ConfigLoadError(f"Chain file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in YAML_SUFFIXES:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except _PARSE_ERRORS as e:
            raise ConfigLoadError(f"Failed to parse chain file {path}: {e}") from e

        if data is None:
            return {}
        if isinstance(data, list):
            return {'spec': data}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Chain file {path} must contain a mapping or a list")
        return data

    def resolve_path(self, name_or_path: Union[str, Path]) -> Path:
        path = Path(name_or_path)
        if path.suffix:
            return path if path.is_absolute() or path.exists() else self.chain_dir / path
        for suffix in YAML_SUFFIXES + (".json",):
            candidate = self.chain_dir / f"{path}{suffix}"
            if candidate.exists():
                return candidate
        return self.chain_dir / f"{path}.yaml"

    def load(self, name_or_path: Union[str, Path]) -> ChainFile:
        """
        Load a chain file by path or by bare name inside chain_dir.

        Raises:
            ConfigLoadError: If the file cannot be loaded or fails the
                chain file schema (no spec, bad config block, malformed
                stage elements)
        """
        path = self.resolve_path(name_or_path)
        if path in self._cache:
            return self._cache[path]

        data = self._read(path)
        try:
            document = validate_chain_file(data)
            config = ChainConfig.from_dict(document.config.model_dump(exclude_unset=True))
        except (ValidationError, InvalidParamRange) as e:
            raise ConfigLoadError(f"Invalid chain file {path}: {e}") from e

        chain_file = ChainFile(
            name=document.name or path.stem,
            spec=[_normalize_item(item) for item in document.spec],
            config=config,
            path=path,
        )
        self._cache[path] = chain_file
        logger.debug("Loaded chain file %s (%d elements)", path, len(chain_file.spec))
        return chain_file

    def save(self, chain_file: ChainFile, path: Union[str, Path]) -> Path:
        """Write a chain file as YAML (or JSON for a .json path)."""
        path = Path(path)
        data = chain_file.to_dict()
        data['spec'] = [_plain(item) for item in data['spec']]
        try:
            validate_chain_file(data)
        except ValidationError as e:
            raise ConfigLoadError(f"Refusing to write invalid chain file {path}: {e}") from e
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            if path.suffix.lower() in YAML_SUFFIXES:
                yaml.safe_dump(data, f, sort_keys=False)
            else:
                json.dump(data, f, indent=2)
        self._cache.pop(path, None)
        return path

    def available(self) -> List[str]:
        """Names of chain files in chain_dir."""
        if not self.chain_dir.exists():
            return []
        names = set()
        for suffix in YAML_SUFFIXES + (".json",):
            for path in self.chain_dir.glob(f"*{suffix}"):
                names.add(path.stem)
        return sorted(names)

    def reload(self) -> None:
        """Clear the cache so files are read again on next access."""
        self._cache.clear()
        logger.info("Chain file cache cleared")


def _normalize_item(item: Any) -> Any:
    # YAML/JSON have no tuples: a two-element [kind, {params}] list is a stage pair
    if isinstance(item, list) and len(item) == 2 and isinstance(item[1], dict):
        return (item[0], item[1])
    return item


def _plain(item: Any) -> Any:
    if isinstance(item, tuple):
        return [item[0], dict(item[1])]
    return item
