"""Command executor abstraction: Protocol + subprocess implementation."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Protocol

from dvdi.infrastructure.logger import logger


@dataclass(frozen=True)
class CommandResult:
    """invoked=False means the command could not be started at all."""

    invoked: bool
    exit_code: int = -1
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.invoked and self.exit_code == 0


class CommandExecutor(Protocol):
    """Synchronous boundary for running the volume driver CLI."""

    def run(self, executable: str, args: list[str]) -> CommandResult: ...


class SubprocessExecutor:
    """Runs commands as child processes, without a shell."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def _resolve(self, executable: str) -> str | None:
        if os.sep in executable:
            return executable if os.access(executable, os.X_OK) else None
        return shutil.which(executable)

    def run(self, executable: str, args: list[str]) -> CommandResult:
        resolved = self._resolve(executable)
        if resolved is None:
            logger.error("Command not found or not executable", executable=executable)
            return CommandResult(invoked=False)

        try:
            result = subprocess.run(
                [resolved, *args],
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out", executable=executable, args=args, timeout=self._timeout)
            return CommandResult(invoked=True, exit_code=-1, stderr="timed out")
        except OSError as err:
            logger.error("Failed to start command", executable=executable, error=str(err))
            return CommandResult(invoked=False)

        if result.returncode != 0:
            logger.debug("Command stderr", executable=executable, stderr=result.stderr.strip())
        return CommandResult(invoked=True, exit_code=result.returncode, stderr=result.stderr)
