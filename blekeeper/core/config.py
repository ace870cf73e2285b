"""Configuration loading and validation for YAML-based blekeeper settings."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blekeeper.core.errors import ConfigLoadError, ConfigValidationError

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def config_dir() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "blekeeper"


def data_dir() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share")) / "blekeeper"


def default_config_path() -> Path:
    return config_dir() / "config.yaml"


def default_store_path() -> Path:
    return data_dir() / "known_devices.yaml"


@dataclass(frozen=True)
class Config:
    adapter: str | None = None
    store_path: Path = field(default_factory=default_store_path)
    scan_service_uuids: tuple[str, ...] = ()
    resolve_timeout_s: float = 10.0
    probe_timeout_s: float = 2.0


def _load_schema_validator() -> Any:
    schema_text = resources.files("blekeeper.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _build_config(doc: dict[str, Any], source: Path) -> Config:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    store_path = default_store_path()
    if "store_path" in doc:
        store_path = Path(os.path.expandvars(doc["store_path"])).expanduser()

    return Config(
        adapter=doc.get("adapter"),
        store_path=store_path,
        scan_service_uuids=tuple(
            _normalize_uuid(uuid, context=f"scan_service_uuids[{index}]")
            for index, uuid in enumerate(doc.get("scan_service_uuids", []))
        ),
        resolve_timeout_s=float(doc.get("resolve_timeout_s", 10.0)),
        probe_timeout_s=float(doc.get("probe_timeout_s", 2.0)),
    )


def load_config(path: Path | str | None = None) -> Config:
    """Load settings from `path`, or the XDG config file when no path is given.

    A missing default file yields the built-in defaults; an explicit path must exist.
    """
    if path is None:
        source = default_config_path()
        if not source.exists():
            LOGGER.debug("No config file at %s, using defaults", source)
            return Config()
    else:
        source = Path(path)

    return _build_config(_read_yaml(source), source)
