from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from step_mock.config.models import Configuration
from step_mock.domain.errors import ConfigurationError


# ConfigError is raised for invalid configuration files (fail fast).
class ConfigError(ConfigurationError):
    pass


class _UniqueKeyLoader(yaml.SafeLoader):
    # SafeLoader that refuses duplicate mapping keys instead of keeping the last one.
    pass


def _construct_unique_mapping(loader: _UniqueKeyLoader, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
    loader.flatten_mapping(node)
    mapping: dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        if key in mapping:
            raise ConfigError(f"Duplicate key {key!r} at line {key_node.start_mark.line + 1}")
        mapping[key] = loader.construct_object(value_node, deep=True)
    return mapping


_UniqueKeyLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


def load_yaml(text: str) -> object:
    try:
        return yaml.load(text, Loader=_UniqueKeyLoader)  # noqa: S506 - SafeLoader subclass
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc


def load_config(path: Path) -> Configuration:
    # YAML loader for the entity configuration file.
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to open config file {path}: {exc}") from exc
    return parse_config(load_yaml(text))


def parse_config(raw: object) -> Configuration:
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping of entity name to entity definition")
    for name in raw:
        if not isinstance(name, str) or not name:
            raise ConfigError(f"Entity names must be non-empty strings, got {name!r}")
    try:
        return Configuration.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {_describe(exc)}") from exc


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{loc}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)
