"""Attach and detach external volumes through the dvdcli volume driver CLI."""

from __future__ import annotations

from dvdi.execution.command_executor import CommandExecutor
from dvdi.infrastructure.config import (
    DVDCLI_BIN,
    DVDCLI_MOUNT_CMD,
    DVDCLI_UNMOUNT_CMD,
    VOL_DRIVER_CMD_OPTION,
    VOL_NAME_CMD_OPTION,
    VOL_OPTS_CMD_OPTION,
)
from dvdi.infrastructure.logger import logger
from dvdi.isolator.errors import AttachError, CommandDispatchError
from dvdi.mounts.types import ExternalMount
from dvdi.mounts.validation import contains_prohibited_chars


def mount_args(mount: ExternalMount) -> list[str]:
    args = [
        DVDCLI_MOUNT_CMD,
        f"{VOL_DRIVER_CMD_OPTION}{mount.driver_name}",
        f"{VOL_NAME_CMD_OPTION}{mount.volume_name}",
    ]
    args.extend(f"{VOL_OPTS_CMD_OPTION}{tok}" for tok in mount.option_tokens())
    return args


def unmount_args(mount: ExternalMount) -> list[str]:
    return [
        DVDCLI_UNMOUNT_CMD,
        f"{VOL_DRIVER_CMD_OPTION}{mount.driver_name}",
        f"{VOL_NAME_CMD_OPTION}{mount.volume_name}",
    ]


class VolumeDriverCli:
    """Issues attach/detach commands and interprets their outcome.

    attach raises AttachError on a non-zero exit. detach tolerates a
    non-zero exit, assuming the volume was already unmounted. Both raise
    CommandDispatchError when the CLI cannot be run at all.
    """

    def __init__(self, executor: CommandExecutor, binary: str = DVDCLI_BIN) -> None:
        self._executor = executor
        self._binary = binary

    def _check_formattable(self, mount: ExternalMount, caller: str) -> None:
        if not mount.volume_name or any(
            contains_prohibited_chars(v) for v in (mount.driver_name, mount.volume_name, mount.mount_options)
        ):
            logger.error("Failed to format a driver command", mount=str(mount), caller=caller)
            raise CommandDispatchError(f"failed to format a driver command for {mount} on {caller}")

    def attach(self, mount: ExternalMount, caller: str) -> None:
        logger.info("Attaching external volume", driver=mount.driver_name, volume=mount.volume_name, caller=caller)
        self._check_formattable(mount, caller)

        result = self._executor.run(self._binary, mount_args(mount))
        if not result.invoked:
            logger.error("Failed to acquire a command processor for mount", caller=caller)
            raise CommandDispatchError(f"failed to invoke {self._binary} to mount {mount} on {caller}")
        if result.exit_code != 0:
            logger.error(
                "Mount command failed",
                mount=str(mount),
                caller=caller,
                exit_code=result.exit_code,
                stderr=result.stderr.strip(),
            )
            raise AttachError(
                f"mount of {mount} failed with exit code {result.exit_code}",
                {"volume": mount.volume_name, "driver": mount.driver_name, "exit_code": result.exit_code},
            )

    def detach(self, mount: ExternalMount, caller: str) -> None:
        logger.info("Detaching external volume", driver=mount.driver_name, volume=mount.volume_name, caller=caller)
        self._check_formattable(mount, caller)

        result = self._executor.run(self._binary, unmount_args(mount))
        if not result.invoked:
            logger.error("Failed to acquire a command processor for unmount", caller=caller)
            raise CommandDispatchError(f"failed to invoke {self._binary} to unmount {mount} on {caller}")
        if result.exit_code != 0:
            logger.warning(
                "Unmount command failed, assuming the volume was already unmounted",
                mount=str(mount),
                caller=caller,
                exit_code=result.exit_code,
            )
