"""
Engine configuration read from ``uplang.toml``.

Example:

    [compose]
    search_paths = ["shared", "../common"]
    strategy = "deep"            # "deep" | "replace"
    list_strategy = "append"     # "append" | "replace" | "unique"

    [resolve]
    max_passes = 100

    [output]
    format = "json"              # "json" | "yaml"

``UPLANG_MAX_PASSES`` overrides ``[resolve].max_passes``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError, ErrorContext
from .merge import ListStrategy, MergeOptions, MergeStrategy
from .projector import RENDERERS
from .resolver import DEFAULT_MAX_PASSES

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "uplang.toml"
MAX_PASSES_ENV_VAR = "UPLANG_MAX_PASSES"

_KNOWN_KEYS: dict[str, set[str]] = {
    "compose": {"search_paths", "strategy", "list_strategy"},
    "resolve": {"max_passes"},
    "output": {"format"},
}


@dataclass
class ComposeConfig:
    """Composition settings."""

    search_paths: list[Path] = field(default_factory=list)
    strategy: MergeStrategy = MergeStrategy.DEEP
    list_strategy: ListStrategy = ListStrategy.APPEND

    def merge_options(self) -> MergeOptions:
        return MergeOptions(strategy=self.strategy, list_strategy=self.list_strategy)


@dataclass
class ResolveConfig:
    max_passes: int = DEFAULT_MAX_PASSES


@dataclass
class OutputConfig:
    format: str = "json"  # "json" | "yaml"


@dataclass
class EngineConfig:
    """Complete engine configuration (defaults when no file is present)."""

    compose: ComposeConfig = field(default_factory=ComposeConfig)
    resolve: ResolveConfig = field(default_factory=ResolveConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    path: Path | None = None


def _warn_unknown(data: dict[str, Any], path: Path) -> None:
    for section, values in data.items():
        if section not in _KNOWN_KEYS:
            logger.warning("Unknown section [%s] in %s", section, path)
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"[{section}] must be a table", ErrorContext(file=path))
        for key in values:
            if key not in _KNOWN_KEYS[section]:
                logger.warning("Unknown key '%s' in [%s] of %s", key, section, path)


def _choice(enum_type: type, value: Any, key: str, path: Path | None):
    try:
        return enum_type(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ConfigError(
            f"Invalid {key} '{value}' (expected one of: {allowed})",
            ErrorContext(file=path),
        ) from None


def _max_passes(value: Any, source: str, path: Path | None) -> int:
    try:
        passes = int(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f"Invalid max_passes {value!r} from {source} (expected an integer)",
            ErrorContext(file=path),
        ) from None
    if isinstance(value, bool) or passes < 1:
        raise ConfigError(
            f"Invalid max_passes {value!r} from {source} (must be at least 1)",
            ErrorContext(file=path),
        )
    return passes


def parse_config(data: dict[str, Any], path: Path | None = None) -> EngineConfig:
    """
    Build an EngineConfig from already-parsed TOML data.

    Relative search paths are resolved against the config file's directory.

    Raises:
        ConfigError: If a value is invalid
    """
    if path is not None:
        _warn_unknown(data, path)

    compose_data = data.get("compose", {})
    resolve_data = data.get("resolve", {})
    output_data = data.get("output", {})

    raw_paths = compose_data.get("search_paths", [])
    if not isinstance(raw_paths, list) or not all(isinstance(p, str) for p in raw_paths):
        raise ConfigError("search_paths must be a list of strings", ErrorContext(file=path))
    root = path.parent if path is not None else Path.cwd()
    search_paths = [(root / p).resolve() for p in raw_paths]

    compose = ComposeConfig(
        search_paths=search_paths,
        strategy=_choice(MergeStrategy, compose_data.get("strategy", "deep"), "strategy", path),
        list_strategy=_choice(
            ListStrategy, compose_data.get("list_strategy", "append"), "list_strategy", path
        ),
    )

    resolve = ResolveConfig(
        max_passes=_max_passes(
            resolve_data.get("max_passes", DEFAULT_MAX_PASSES), "[resolve]", path
        )
    )
    env_passes = os.environ.get(MAX_PASSES_ENV_VAR, "").strip()
    if env_passes:
        resolve.max_passes = _max_passes(env_passes, MAX_PASSES_ENV_VAR, path)

    output_format = str(output_data.get("format", "json")).lower()
    if output_format not in RENDERERS:
        raise ConfigError(
            f"Invalid output format '{output_format}' (expected one of: json, yaml)",
            ErrorContext(file=path),
        )

    return EngineConfig(
        compose=compose,
        resolve=resolve,
        output=OutputConfig(format=output_format),
        path=path,
    )


def load_config(path: Path) -> EngineConfig:
    """
    Load ``uplang.toml``.

    Raises:
        ConfigError: If the file is not valid TOML or holds invalid values
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML: {exc}", ErrorContext(file=path)) from exc
    logger.debug("Loaded config from %s", path)
    return parse_config(data, path)


def discover_config(start: Path) -> EngineConfig:
    """
    Find ``uplang.toml`` in ``start`` (or the directory of ``start``) and its
    parents. Returns the defaults when none exists.
    """
    directory = start if start.is_dir() else start.parent
    for candidate_dir in [directory.resolve(), *directory.resolve().parents]:
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return load_config(candidate)
    return parse_config({})
