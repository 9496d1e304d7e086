"""Parse a container's environment into external mount requests."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from dvdi.infrastructure.config import (
    MAX_MOUNTS_PER_CONTAINER,
    VOL_DRIVER_ENV_VAR_NAME,
    VOL_NAME_ENV_VAR_NAME,
    VOL_OPTS_ENV_VAR_NAME,
)
from dvdi.infrastructure.logger import logger
from dvdi.mounts.types import ExternalMount
from dvdi.mounts.validation import ensure_allowed

_PREFIXES = (VOL_NAME_ENV_VAR_NAME, VOL_DRIVER_ENV_VAR_NAME, VOL_OPTS_ENV_VAR_NAME)


def _slot(name: str, prefix: str) -> int | None:
    """Slot index for NAME (0) or NAME1..NAME9; None for anything else."""
    suffix = name[len(prefix) :]
    if not suffix:
        return 0
    if len(suffix) == 1 and suffix.isdigit() and suffix != "0":
        return int(suffix)
    return None


def parse_mount_requests(
    environment: Mapping[str, str] | Iterable[tuple[str, str]],
    default_driver: str,
) -> list[ExternalMount]:
    """Build the ordered list of requested mounts, empty slots skipped.

    Every variable starting with a recognised prefix is checked for
    prohibited characters, and one bad value rejects the whole batch.
    """
    items = environment.items() if isinstance(environment, Mapping) else environment

    slots: dict[str, list[str]] = {prefix: [""] * MAX_MOUNTS_PER_CONTAINER for prefix in _PREFIXES}

    for name, value in items:
        prefix = next((p for p in _PREFIXES if name.startswith(p)), None)
        if prefix is None:
            continue
        ensure_allowed(name, value)
        index = _slot(name, prefix)
        if index is None:
            logger.debug("Ignoring unrecognised volume variable", variable=name)
            continue
        slots[prefix][index] = value
        if prefix == VOL_NAME_ENV_VAR_NAME:
            logger.info("External volume name parsed from environment", variable=name, volume=value)

    requests: list[ExternalMount] = []
    for i in range(MAX_MOUNTS_PER_CONTAINER):
        volume = slots[VOL_NAME_ENV_VAR_NAME][i]
        if not volume:
            continue
        requests.append(
            ExternalMount(
                driver_name=slots[VOL_DRIVER_ENV_VAR_NAME][i] or default_driver,
                volume_name=volume,
                mount_options=slots[VOL_OPTS_ENV_VAR_NAME][i],
            )
        )
    return requests
