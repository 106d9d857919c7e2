"""
Role hierarchy.

Three ordered roles: ReadOnly (1) < User (2) < Admin (3).  Anything else
is "no role" with level 0 and is denied everything by the access control
engine.  Level comparison lives in
``stockroom_services.access_control.is_at_least_role`` and nowhere else.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any

from stockroom_kernel.exceptions import UnknownRoleError

NO_ROLE_LEVEL = 0


@unique
class Role(str, Enum):
    READ_ONLY = "ReadOnly"
    USER = "User"
    ADMIN = "Admin"

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]

    @classmethod
    def parse(cls, value: Any) -> Role:
        """Resolve a role name or Role; raise UnknownRoleError otherwise."""
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip())
            except ValueError:
                pass
        raise UnknownRoleError(value)

    @classmethod
    def coerce(cls, value: Any) -> Role | None:
        """Like parse(), but unknown or missing roles become None."""
        try:
            return cls.parse(value)
        except UnknownRoleError:
            return None


_ROLE_LEVELS: dict[Role, int] = {
    Role.READ_ONLY: 1,
    Role.USER: 2,
    Role.ADMIN: 3,
}


@unique
class RiskLevel(str, Enum):
    """Audit classification of an editing point. Reporting only."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
