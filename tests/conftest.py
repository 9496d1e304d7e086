from pathlib import Path

import pytest

from dvdi.execution.command_executor import CommandResult
from dvdi.infrastructure.config import IsolatorSettings
from dvdi.isolator.isolator import VolumeIsolator


class FakeExecutor:
    """Records driver CLI invocations and answers them from configured outcomes."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.failing_mounts: set[str] = set()
        self.unmount_exit_code = 0
        self.invoked = True

    def run(self, executable: str, args: list[str]) -> CommandResult:
        self.calls.append((executable, list(args)))
        if not self.invoked:
            return CommandResult(invoked=False)
        if args[0] == "mount" and _volume(args) in self.failing_mounts:
            return CommandResult(invoked=True, exit_code=1, stderr="attach failed")
        if args[0] == "unmount":
            return CommandResult(invoked=True, exit_code=self.unmount_exit_code)
        return CommandResult(invoked=True, exit_code=0)

    def mounted(self) -> list[str]:
        return [_volume(args) for _, args in self.calls if args[0] == "mount"]

    def unmounted(self) -> list[str]:
        return [_volume(args) for _, args in self.calls if args[0] == "unmount"]


def _volume(args: list[str]) -> str:
    return next(a.split("=", 1)[1] for a in args if a.startswith("--volumename="))


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def settings(tmp_path: Path) -> IsolatorSettings:
    return IsolatorSettings(
        mount_list_path=tmp_path / "dvdi" / "dvdimounts.pb",
        dvdcli_bin="/usr/bin/dvdcli",
        default_driver="rexray",
        require_root=False,
    )


@pytest.fixture
def isolator(settings: IsolatorSettings, executor: FakeExecutor) -> VolumeIsolator:
    return VolumeIsolator(settings, executor)
