"""
Configuration Compiler -- StockroomConfigurationSet -> CompiledAccessPolicy.

Turns the validated, text-typed source artifact into the runtime access
matrix: role names become ``Role`` members, risk names become
``RiskLevel`` members, and every table is wrapped in a read-only mapping.
The compiled policy is never mutated after this point.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from stockroom_config.schema import (
    RoleGateDef,
    SettingsDef,
    StockroomConfigurationSet,
)
from stockroom_kernel.domain.roles import RiskLevel, Role


@dataclass(frozen=True)
class CompiledEditingPoint:
    component: str
    point: str
    min_role: Role
    risk: RiskLevel


@dataclass(frozen=True)
class CompiledAccessPolicy:
    """
    The runtime access matrix.

    ``actions`` and ``fields`` map component -> key -> minimum Role.  Field
    mappings keep declaration order so field partitions are stable.
    """

    config_id: str
    config_version: int
    checksum: str
    actions: Mapping[str, Mapping[str, Role]]
    fields: Mapping[str, Mapping[str, Role]]
    editing_points: Mapping[str, Mapping[str, CompiledEditingPoint]]
    navigation: Mapping[str, Role]
    bulk_operations: Mapping[str, Role]
    features: Mapping[str, Role]
    settings: SettingsDef

    @property
    def components(self) -> tuple[str, ...]:
        """Components with at least one action, in declaration order."""
        return tuple(self.actions)

    def min_role_for_action(self, component: str, action: str) -> Role | None:
        return self.actions.get(component, {}).get(action)

    def min_role_for_field(self, component: str, field: str) -> Role | None:
        return self.fields.get(component, {}).get(field)


def _gates(defs: tuple[RoleGateDef, ...]) -> Mapping[str, Role]:
    return MappingProxyType({g.name: Role.parse(g.min_role) for g in defs})


def compile_access_policy(config: StockroomConfigurationSet) -> CompiledAccessPolicy:
    """
    Compile a validated configuration set.

    Raises:
        UnknownRoleError: if a role name slipped past validation.
        ValueError: if a risk name slipped past validation.
    """
    actions: dict[str, Mapping[str, Role]] = {}
    fields: dict[str, Mapping[str, Role]] = {}
    for component in config.components:
        if component.actions:
            actions[component.name] = MappingProxyType(
                {name: Role.parse(role) for name, role in component.actions}
            )
        if component.fields:
            fields[component.name] = MappingProxyType(
                {name: Role.parse(role) for name, role in component.fields}
            )

    points: dict[str, dict[str, CompiledEditingPoint]] = {}
    for ep in config.editing_points:
        points.setdefault(ep.component, {})[ep.point] = CompiledEditingPoint(
            component=ep.component,
            point=ep.point,
            min_role=Role.parse(ep.min_role),
            risk=RiskLevel(ep.risk),
        )

    return CompiledAccessPolicy(
        config_id=config.config_id,
        config_version=config.version,
        checksum=config.checksum,
        actions=MappingProxyType(actions),
        fields=MappingProxyType(fields),
        editing_points=MappingProxyType(
            {c: MappingProxyType(p) for c, p in points.items()}
        ),
        navigation=_gates(config.navigation),
        bulk_operations=_gates(config.bulk_operations),
        features=_gates(config.features),
        settings=config.settings,
    )
