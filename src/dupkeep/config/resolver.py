"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterator, Mapping

import yaml
from pydantic import ValidationError

from dupkeep.errors import ConfigError

from .models import DupkeepConfig

ENV_PREFIX = "DUPKEEP__"


def resolve_with_precedence(
    *,
    defaults: DupkeepConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> DupkeepConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML configuration file.
        env_overrides: Values parsed from ``DUPKEEP__`` environment variables.
        cli_overrides: Dotted-key overrides supplied on the command line.

    Returns:
        DupkeepConfig: Validated configuration.

    Raises:
        ConfigError: If a source is malformed or the merged values are invalid.
    """
    merged = defaults.model_dump(mode="python")
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for source_name, layer in layers:
        if layer is None:
            continue
        merged = _deep_merge(merged, expand_dotted(layer, source_name=source_name))

    try:
        return DupkeepConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``DUPKEEP__SECTION__KEY`` variables into a nested mapping.

    Values are parsed as YAML literals so numbers and booleans keep their types.
    """
    overrides: dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw_value)
        except yaml.YAMLError:
            value = raw_value
        assign_path(overrides, segments, value, source_name="environment")
    return overrides


def flatten_for_env(config: DupkeepConfig) -> Dict[str, str]:
    """Render the config as ``DUPKEEP__SECTION__KEY`` environment variables."""
    flat: Dict[str, str] = {}
    for path, value in _walk(config.model_dump(mode="python"), []):
        env_key = ENV_PREFIX + "__".join(part.upper() for part in path)
        if isinstance(value, list):
            flat[env_key] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[env_key] = "null"
        else:
            flat[env_key] = str(value)
    return flat


def expand_dotted(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    """Expand ``a.b`` style keys into nested dictionaries."""
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, source_name=source_name)
        assign_path(expanded, key.split("."), value, source_name=source_name)
    return expanded


def assign_path(
    target: dict[str, Any], path: list[str], value: Any, *, source_name: str = "cli"
) -> None:
    """Set ``value`` at ``path`` inside ``target``, creating intermediate mappings."""
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} "
                "conflicts with an existing value."
            )
        node = child
    leaf = path[-1]
    if isinstance(value, dict) and isinstance(node.get(leaf), dict):
        node[leaf] = _deep_merge(node[leaf], value)
    else:
        node[leaf] = value


def _walk(value: Any, prefix: list[str]) -> Iterator[tuple[list[str], Any]]:
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _walk(child, prefix + [str(key)])
    else:
        yield prefix, value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = [
    "ENV_PREFIX",
    "resolve_with_precedence",
    "parse_env",
    "flatten_for_env",
    "expand_dotted",
    "assign_path",
]
