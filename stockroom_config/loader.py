"""
Configuration Loader (``stockroom_config.loader``).

Responsibility
--------------
Loads the YAML fragments of a configuration set directory and parses them
into typed ``stockroom_config.schema`` dataclass instances.  This is
**build/test tooling only**; runtime callers use
``stockroom_config.get_active_config()``.

Failure modes
-------------
* Missing ``root.yaml``  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* A section of the wrong shape  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` produces a deterministic SHA-256 over the canonical
JSON form of every fragment, so the active access matrix can be matched
against a version-controlled baseline.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stockroom_config.schema import (
    ComponentDef,
    EditingPointDef,
    RoleGateDef,
    SettingsDef,
    StockroomConfigurationSet,
)

ROOT_FILE = "root.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _require_mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _role_pairs(data: Any, where: str) -> tuple[tuple[str, str], ...]:
    mapping = _require_mapping(data, where)
    return tuple((str(name), str(role)) for name, role in mapping.items())


def parse_component(name: str, data: dict[str, Any]) -> ComponentDef:
    data = _require_mapping(data, f"components.{name}")
    return ComponentDef(
        name=name,
        actions=_role_pairs(data.get("actions"), f"components.{name}.actions"),
        fields=_role_pairs(data.get("fields"), f"components.{name}.fields"),
    )


def parse_editing_points(data: dict[str, Any]) -> tuple[EditingPointDef, ...]:
    points: list[EditingPointDef] = []
    for component, entries in _require_mapping(data, "editing_points").items():
        for point, spec in _require_mapping(entries, f"editing_points.{component}").items():
            spec = _require_mapping(spec, f"editing_points.{component}.{point}")
            points.append(
                EditingPointDef(
                    component=str(component),
                    point=str(point),
                    min_role=str(spec["min_role"]),
                    risk=str(spec.get("risk", "low")),
                )
            )
    return tuple(points)


def parse_gates(data: Any, where: str) -> tuple[RoleGateDef, ...]:
    return tuple(
        RoleGateDef(name=name, min_role=role) for name, role in _role_pairs(data, where)
    )


def parse_settings(data: dict[str, Any]) -> SettingsDef:
    data = _require_mapping(data, "settings")
    defaults = SettingsDef()
    return SettingsDef(
        category_cache_ttl_seconds=int(
            data.get("category_cache_ttl_seconds", defaults.category_cache_ttl_seconds)
        ),
        low_stock_threshold=int(
            data.get("low_stock_threshold", defaults.low_stock_threshold)
        ),
        search_min_term_length=int(
            data.get("search_min_term_length", defaults.search_min_term_length)
        ),
        default_part_category=str(
            data.get("default_part_category", defaults.default_part_category)
        ),
        default_part_status=str(
            data.get("default_part_status", defaults.default_part_status)
        ),
    )


def compute_checksum(fragments: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of the fragments."""
    canonical = json.dumps(fragments, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_configuration_set(directory: Path) -> StockroomConfigurationSet:
    """
    Assemble a configuration set from every ``*.yaml`` fragment in a directory.

    ``root.yaml`` supplies identity; other fragments contribute sections by
    top-level key.  A section appearing in two fragments is an error.
    """
    directory = Path(directory)
    root = load_yaml_file(directory / ROOT_FILE)

    sections: dict[str, Any] = {}
    fragments: dict[str, Any] = {ROOT_FILE: root}
    for path in sorted(directory.glob("*.yaml")):
        if path.name == ROOT_FILE:
            continue
        data = load_yaml_file(path)
        fragments[path.name] = data
        for key, value in data.items():
            if key in sections:
                raise ValueError(f"Section '{key}' defined more than once (in {path.name})")
            sections[key] = value

    components = tuple(
        parse_component(str(name), spec)
        for name, spec in _require_mapping(sections.get("components"), "components").items()
    )

    return StockroomConfigurationSet(
        config_id=str(root["config_id"]),
        version=int(root["version"]),
        description=str(root.get("description", "")).strip(),
        components=components,
        editing_points=parse_editing_points(sections.get("editing_points") or {}),
        navigation=parse_gates(sections.get("navigation"), "navigation"),
        bulk_operations=parse_gates(sections.get("bulk_operations"), "bulk_operations"),
        features=parse_gates(sections.get("features"), "features"),
        settings=parse_settings(sections.get("settings") or {}),
        checksum=compute_checksum(fragments),
    )
