"""Isolator error taxonomy. Raised inside operations, resolved at their boundary."""

from __future__ import annotations

from typing import Any


class IsolatorError(Exception):
    """Expected failure of an isolator operation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}

    @property
    def message(self) -> str:
        return self.args[0]


class MountRequestError(IsolatorError):
    """A container's volume request is malformed or carries prohibited characters."""


class CommandDispatchError(IsolatorError):
    """The driver CLI could not be invoked at all."""


class AttachError(IsolatorError):
    """The driver CLI ran but failed to attach a volume."""


class LedgerPersistenceError(IsolatorError):
    """The mount ledger could not be written."""


class PrivilegeError(IsolatorError):
    """The isolator lacks the privileges needed to attach volumes."""
