"""
External collaborators of the synchronization core.

The core reaches the outside world through three narrow interfaces: the
remote list store (``list_store``), a notifier for user-facing messages,
and an identity provider for the current role and credential.  This
module defines the latter two and the implementations used in tests and
headless runs.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from stockroom_kernel.domain.roles import Role
from stockroom_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@runtime_checkable
class Notifier(Protocol):
    """Surfaces success and error messages to the user. Fire-and-forget."""

    def notify_success(self, message: str) -> None: ...

    def notify_error(self, message: str) -> None: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Supplies the signed-in user's role and a credential for remote calls."""

    def current_role(self) -> Role | str | None: ...

    async def get_credential(self) -> str | None: ...


class LoggingNotifier:
    """Notifier that writes each message to the structured log."""

    def notify_success(self, message: str) -> None:
        logger.info("user_notified", extra={"kind": "success", "text": message})

    def notify_error(self, message: str) -> None:
        logger.warning("user_notified", extra={"kind": "error", "text": message})


class RecordingNotifier:
    """Notifier that keeps every message, in order, for assertions."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify_success(self, message: str) -> None:
        self.messages.append(("success", message))

    def notify_error(self, message: str) -> None:
        self.messages.append(("error", message))

    @property
    def successes(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "success"]

    @property
    def errors(self) -> list[str]:
        return [m for kind, m in self.messages if kind == "error"]

    def clear(self) -> None:
        self.messages.clear()


class StaticIdentityProvider:
    """Identity with a fixed role and credential; both may be changed in place."""

    def __init__(self, role: Role | str | None = Role.USER, credential: str | None = "token"):
        self.role = role
        self.credential = credential

    def current_role(self) -> Role | str | None:
        return self.role

    async def get_credential(self) -> str | None:
        return self.credential
