"""
stockroom_services.access_control -- Hierarchical, field-level role authorization.

Responsibility:
    Answer "may this role do X on component Y" for actions, form fields,
    editing points, routes, bulk operations and feature flags.  Every
    answer is a pure function of (role, component, key) and the compiled
    access matrix.

Architecture position:
    Services layer.  Consumes ``CompiledAccessPolicy`` from
    ``stockroom_config``.  Called by UI code to shape forms, by the
    resource cache mutation guard, and by the module services before any
    remote write.

Invariants:
    - Role is always passed in explicitly; this module never resolves
      the current user.
    - Fail-closed: unknown roles, components, actions, fields, editing
      points, routes and operations are denied.
    - Monotonic: ``is_at_least_role`` is the only place role levels are
      compared, so a higher role always holds a superset of a lower
      role's access.
    - ``get_risk_level`` is reporting only; it never gates access.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from stockroom_config import CompiledAccessPolicy, get_active_config
from stockroom_config.compiler import CompiledEditingPoint
from stockroom_kernel.domain.roles import NO_ROLE_LEVEL, RiskLevel, Role
from stockroom_kernel.exceptions import PermissionDeniedError
from stockroom_kernel.logging_config import get_logger

logger = get_logger("services.access_control")

RoleLike = Role | str | None

BULK_OPERATION_COMPONENT = "bulk"


@lru_cache(maxsize=1)
def default_policy() -> CompiledAccessPolicy:
    """The compiled default configuration set, loaded once per process."""
    return get_active_config()


def is_at_least_role(role: RoleLike, target: RoleLike) -> bool:
    """True iff ``role`` is a known role whose level is >= ``target``'s.

    A missing or unknown ``role`` is never at least anything.  An unknown
    ``target`` cannot be satisfied either.
    """
    held = Role.coerce(role)
    needed = Role.coerce(target)
    if held is None or needed is None:
        return False
    return held.level >= needed.level > NO_ROLE_LEVEL


class AccessControl:
    """Access decisions bound to one compiled access policy.

    The module-level functions below delegate to an instance bound to
    ``default_policy()``; tests and alternative configuration sets build
    their own.
    """

    def __init__(self, policy: CompiledAccessPolicy):
        self._policy = policy

    @property
    def policy(self) -> CompiledAccessPolicy:
        return self._policy

    # -- actions ----------------------------------------------------------

    def can_perform_action(self, role: RoleLike, component: str, action: str) -> bool:
        return is_at_least_role(role, self._policy.min_role_for_action(component, action))

    def filter_actions_by_role(self, role: RoleLike, component: str) -> tuple[str, ...]:
        actions = self._policy.actions.get(component, {})
        return tuple(a for a in actions if self.can_perform_action(role, component, a))

    def get_accessible_components(self, role: RoleLike) -> tuple[str, ...]:
        return tuple(
            c for c in self._policy.components if self.filter_actions_by_role(role, c)
        )

    # -- fields -----------------------------------------------------------

    def can_access_field(self, role: RoleLike, component: str, field: str) -> bool:
        return is_at_least_role(role, self._policy.min_role_for_field(component, field))

    def get_accessible_fields(self, role: RoleLike, component: str) -> tuple[str, ...]:
        fields = self._policy.fields.get(component, {})
        return tuple(f for f in fields if self.can_access_field(role, component, f))

    def get_restricted_fields(self, role: RoleLike, component: str) -> tuple[str, ...]:
        fields = self._policy.fields.get(component, {})
        return tuple(f for f in fields if not self.can_access_field(role, component, f))

    # -- editing points ---------------------------------------------------

    def _editing_point(self, component: str, point: str) -> CompiledEditingPoint | None:
        return self._policy.editing_points.get(component, {}).get(point)

    def can_access_editing_point(self, role: RoleLike, component: str, point: str) -> bool:
        ep = self._editing_point(component, point)
        return ep is not None and is_at_least_role(role, ep.min_role)

    def get_risk_level(self, component: str, point: str) -> RiskLevel:
        ep = self._editing_point(component, point)
        return ep.risk if ep is not None else RiskLevel.LOW

    def get_editing_points_by_risk(
        self, risk: RiskLevel | str
    ) -> tuple[CompiledEditingPoint, ...]:
        wanted = RiskLevel(risk)
        return tuple(
            ep
            for points in self._policy.editing_points.values()
            for ep in points.values()
            if ep.risk is wanted
        )

    # -- routes, bulk operations, feature flags ---------------------------

    def can_navigate(self, role: RoleLike, route: str) -> bool:
        return is_at_least_role(role, self._policy.navigation.get(route.strip("/")))

    def can_perform_bulk_operation(self, role: RoleLike, operation: str) -> bool:
        return is_at_least_role(role, self._policy.bulk_operations.get(operation))

    def feature_flags(self, role: RoleLike) -> dict[str, bool]:
        return {
            name: is_at_least_role(role, min_role)
            for name, min_role in self._policy.features.items()
        }

    # -- enforcement ------------------------------------------------------

    def require_action(self, role: RoleLike, component: str, action: str) -> None:
        """Raise PermissionDeniedError unless the role may perform the action."""
        if not self.can_perform_action(role, component, action):
            _log_denial(role, component, action, "action")
            raise PermissionDeniedError(_role_name(role), component, action)

    def require_fields(self, role: RoleLike, component: str, fields: Any) -> None:
        """Raise PermissionDeniedError on the first field the role may not write."""
        for field in fields:
            if not self.can_access_field(role, component, field):
                _log_denial(role, component, field, "field")
                raise PermissionDeniedError(_role_name(role), component, field)

    def require_bulk_operation(self, role: RoleLike, operation: str) -> None:
        if not self.can_perform_bulk_operation(role, operation):
            _log_denial(role, BULK_OPERATION_COMPONENT, operation, "bulk_operation")
            raise PermissionDeniedError(
                _role_name(role), BULK_OPERATION_COMPONENT, operation
            )


def _role_name(role: RoleLike) -> str | None:
    if isinstance(role, Role):
        return role.value
    return role


def _log_denial(role: RoleLike, component: str, key: str, kind: str) -> None:
    logger.info(
        "access_denied",
        extra={
            "role": _role_name(role),
            "component": component,
            "key": key,
            "kind": kind,
        },
    )


@lru_cache(maxsize=1)
def default_access_control() -> AccessControl:
    return AccessControl(default_policy())


# ---------------------------------------------------------------------------
# Module-level API over the default policy
# ---------------------------------------------------------------------------


def can_perform_action(role: RoleLike, component: str, action: str) -> bool:
    return default_access_control().can_perform_action(role, component, action)


def can_access_field(role: RoleLike, component: str, field: str) -> bool:
    return default_access_control().can_access_field(role, component, field)


def get_accessible_fields(role: RoleLike, component: str) -> tuple[str, ...]:
    return default_access_control().get_accessible_fields(role, component)


def get_restricted_fields(role: RoleLike, component: str) -> tuple[str, ...]:
    return default_access_control().get_restricted_fields(role, component)


def get_risk_level(component: str, point: str) -> RiskLevel:
    return default_access_control().get_risk_level(component, point)


def can_access_editing_point(role: RoleLike, component: str, point: str) -> bool:
    return default_access_control().can_access_editing_point(role, component, point)


def can_perform_bulk_operation(role: RoleLike, operation: str) -> bool:
    return default_access_control().can_perform_bulk_operation(role, operation)


def filter_actions_by_role(role: RoleLike, component: str) -> tuple[str, ...]:
    return default_access_control().filter_actions_by_role(role, component)


def get_accessible_components(role: RoleLike) -> tuple[str, ...]:
    return default_access_control().get_accessible_components(role)


def get_editing_points_by_risk(risk: RiskLevel | str) -> tuple[CompiledEditingPoint, ...]:
    return default_access_control().get_editing_points_by_risk(risk)


def can_navigate(role: RoleLike, route: str) -> bool:
    return default_access_control().can_navigate(role, route)


def feature_flags(role: RoleLike) -> dict[str, bool]:
    return default_access_control().feature_flags(role)
