"""Barrel re-export of all domain types."""

from dvdi.execution.command_executor import CommandResult
from dvdi.mounts.types import (
    ContainerRunState,
    ExternalMount,
    IsolatorResult,
    MountIdentity,
    MountListFile,
    MountRecord,
)

__all__ = [
    "CommandResult",
    "ContainerRunState",
    "ExternalMount",
    "IsolatorResult",
    "MountIdentity",
    "MountListFile",
    "MountRecord",
]
