"""
StockroomConfigurationSet schema.

Defines the human-authored, reviewable source artifact for the access
matrix and runtime settings.  YAML fragments are parsed into these types
by the loader, checked by the validator, and compiled into a
CompiledAccessPolicy by the compiler.

Key distinction:
  StockroomConfigurationSet = source artifact (human-authored, role names as text)
  CompiledAccessPolicy      = runtime artifact (validated, Role-typed, read-only)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Access matrix (declarative data, no executable logic)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComponentDef:
    """Minimum roles for one UI component's actions and form fields."""

    name: str
    actions: tuple[tuple[str, str], ...] = ()  # (action, min_role)
    fields: tuple[tuple[str, str], ...] = ()  # (field, min_role), declaration order


@dataclass(frozen=True)
class EditingPointDef:
    """One editing point: who may use it and how risky it is."""

    component: str
    point: str
    min_role: str
    risk: str = "low"


@dataclass(frozen=True)
class RoleGateDef:
    """A named gate opened at a minimum role (routes, bulk operations, features)."""

    name: str
    min_role: str


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettingsDef:
    """Runtime tunables for the caches and module services."""

    category_cache_ttl_seconds: int = 900
    low_stock_threshold: int = 5
    search_min_term_length: int = 2
    default_part_category: str = "Uncategorized"
    default_part_status: str = "Active"


# ---------------------------------------------------------------------------
# Root artifact
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockroomConfigurationSet:
    """A complete, assembled configuration set ready for validation."""

    config_id: str
    version: int
    description: str = ""
    components: tuple[ComponentDef, ...] = ()
    editing_points: tuple[EditingPointDef, ...] = ()
    navigation: tuple[RoleGateDef, ...] = ()
    bulk_operations: tuple[RoleGateDef, ...] = ()
    features: tuple[RoleGateDef, ...] = ()
    settings: SettingsDef = SettingsDef()
    checksum: str = ""
