"""Snapshot configuration.

Settings are merged from (lowest to highest precedence) built-in defaults,
``[tool.dirsnap]`` in the root's pyproject.toml, the root's .dirsnap.yaml
and explicit overrides passed by the caller.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import tomllib

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    CONFIG_FILE,
    DEFAULT_IGNORE,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_MAX_WORKERS,
    DEFAULT_SPACE,
    DEFAULT_TARGET_NAME,
    PYPROJECT_FILE,
    PYPROJECT_SECTION,
)
from .errors import ConfigError
from .fingerprint import Strategy
from .writer import WritePolicy


class SnapshotConfig(BaseModel):
    """Everything a snapshot run needs to know."""

    root: Path
    ignore: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE))
    cutoff: int = Field(0, ge=0)  # leading directory segments stripped from keys
    extension: Optional[str] = None  # only files whose name ends with this
    space: Optional[int] = Field(DEFAULT_SPACE, ge=0)  # JSON indent, 0/None = compact
    write_policy: WritePolicy = WritePolicy.ALWAYS
    strategy: Strategy = Strategy.MTIME
    target_name: str = DEFAULT_TARGET_NAME
    max_workers: int = Field(DEFAULT_MAX_WORKERS, ge=1)
    lock_timeout: float = Field(DEFAULT_LOCK_TIMEOUT, gt=0)

    @field_validator("extension")
    @classmethod
    def _empty_extension_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("target_name")
    @classmethod
    def _plain_file_name(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError(f"target_name must be a plain file name, got {value!r}")
        return value


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept both ``write-policy`` and ``write_policy`` spellings."""
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def read_pyproject_config(root: Path) -> Dict[str, Any]:
    """Read the ``[tool.dirsnap]`` table from pyproject.toml, if any."""
    pyproject_path = root / PYPROJECT_FILE
    if not pyproject_path.exists():
        return {}

    try:
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot parse {pyproject_path}: {e}") from e

    section = data.get("tool", {}).get(PYPROJECT_SECTION, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[tool.{PYPROJECT_SECTION}] in {pyproject_path} must be a table")
    return _normalize_keys(section)


def read_yaml_config(root: Path) -> Dict[str, Any]:
    """Read .dirsnap.yaml from the snapshot root, if any."""
    cfg_path = root / CONFIG_FILE
    if not cfg_path.exists():
        return {}

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path} must contain a mapping")
    return _normalize_keys(data)


def load_config(root: Path, **overrides: Any) -> SnapshotConfig:
    """Build the effective configuration for a snapshot of ``root``.

    Args:
        root: Snapshot root directory
        **overrides: Explicit settings; ``None`` values are ignored so CLI
            options that were not given fall through to the files

    Returns:
        Validated SnapshotConfig

    Raises:
        ConfigError: If a config file is malformed or a value is invalid
    """
    root = Path(root)
    merged: Dict[str, Any] = {}
    if root.is_dir():
        merged.update(read_pyproject_config(root))
        merged.update(read_yaml_config(root))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    merged["root"] = root

    try:
        return SnapshotConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid dirsnap configuration: {e}") from e
