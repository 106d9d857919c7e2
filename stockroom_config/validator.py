"""
Configuration Validator (``stockroom_config.validator``).

Responsibility
--------------
Validates a ``StockroomConfigurationSet`` before it is compiled, so that a
typo in the access matrix is a load-time error rather than a silent
runtime denial.

Invariants enforced
-------------------
* Every minimum role names a role in the hierarchy.
* Every editing point risk is one of ``low``, ``medium``, ``high``.
* Numeric settings are positive.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be compiled.
* Validation warnings (``ConfigValidationResult.warnings``)  ->
  configuration may be compiled but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from stockroom_config.schema import StockroomConfigurationSet
from stockroom_kernel.domain.roles import RiskLevel, Role

_ROLE_NAMES = frozenset(r.value for r in Role)
_RISK_NAMES = frozenset(r.value for r in RiskLevel)
_BULK_OPERATIONS = frozenset({"select", "delete", "export"})


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: StockroomConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set. A configuration with errors MUST NOT be compiled."""
    result = ConfigValidationResult()

    _validate_components(config, result)
    _validate_editing_points(config, result)
    _validate_gates(config, result)
    _validate_settings(config, result)

    return result


def _check_role(role: str, where: str, result: ConfigValidationResult) -> None:
    if role not in _ROLE_NAMES:
        result.add_error(
            f"{where}: unknown role '{role}' (expected one of {sorted(_ROLE_NAMES)})"
        )


def _validate_components(
    config: StockroomConfigurationSet, result: ConfigValidationResult
) -> None:
    seen: set[str] = set()
    for component in config.components:
        if component.name in seen:
            result.add_error(f"Duplicate component: {component.name}")
        seen.add(component.name)

        if not component.actions and not component.fields:
            result.add_warning(
                f"Component '{component.name}' declares no actions or fields; "
                "every request against it will be denied"
            )
        for action, role in component.actions:
            _check_role(role, f"components.{component.name}.actions.{action}", result)
        for field_name, role in component.fields:
            _check_role(role, f"components.{component.name}.fields.{field_name}", result)


def _validate_editing_points(
    config: StockroomConfigurationSet, result: ConfigValidationResult
) -> None:
    for ep in config.editing_points:
        where = f"editing_points.{ep.component}.{ep.point}"
        _check_role(ep.min_role, where, result)
        if ep.risk not in _RISK_NAMES:
            result.add_error(
                f"{where}: unknown risk '{ep.risk}' (expected one of {sorted(_RISK_NAMES)})"
            )


def _validate_gates(
    config: StockroomConfigurationSet, result: ConfigValidationResult
) -> None:
    for section, gates in (
        ("navigation", config.navigation),
        ("bulk_operations", config.bulk_operations),
        ("features", config.features),
    ):
        for gate in gates:
            _check_role(gate.min_role, f"{section}.{gate.name}", result)

    for gate in config.bulk_operations:
        if gate.name not in _BULK_OPERATIONS:
            result.add_warning(
                f"bulk_operations.{gate.name}: not a recognised bulk operation "
                f"({sorted(_BULK_OPERATIONS)})"
            )


def _validate_settings(
    config: StockroomConfigurationSet, result: ConfigValidationResult
) -> None:
    settings = config.settings
    if settings.category_cache_ttl_seconds <= 0:
        result.add_error("settings.category_cache_ttl_seconds must be positive")
    if settings.low_stock_threshold < 0:
        result.add_error("settings.low_stock_threshold must not be negative")
    if settings.search_min_term_length < 1:
        result.add_error("settings.search_min_term_length must be at least 1")
    if not settings.default_part_category.strip():
        result.add_error("settings.default_part_category must be non-empty")
