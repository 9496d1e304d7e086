"""Mount ledger persistence to the JSON mount list file."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import ValidationError

from dvdi.infrastructure.logger import logger
from dvdi.isolator.errors import LedgerPersistenceError
from dvdi.mounts.ledger import MountLedger
from dvdi.mounts.types import ExternalMount, MountListFile, MountRecord
from dvdi.mounts.validation import sanitize


class LedgerRepository:
    """Reads and rewrites the whole mount list file."""

    def __init__(self, path: Path, default_driver: str) -> None:
        self._path = path
        self._default_driver = default_driver

    def save(self, ledger: MountLedger) -> None:
        """Atomically replace the mount list with the ledger's current contents."""
        content = MountListFile(mounts=ledger.records()).model_dump_json(by_alias=True, indent=2)

        # Write to temp file then atomic rename to prevent truncation on crash
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content + "\n", encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as err:
            raise LedgerPersistenceError(
                f"failed to write mount list {self._path}: {err}", {"path": str(self._path)}
            ) from err
        logger.debug("Mount list written", path=str(self._path), entries=len(ledger))

    def read_container_mounts(self) -> dict[str, list[ExternalMount]]:
        """Persisted mounts keyed by the container id string.

        An absent, unreadable or malformed file means no prior state.
        Individual records missing a field, or whose container id or
        volume name is empty after sanitising, are skipped.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No mount list found, assuming no prior state", path=str(self._path))
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as err:
            logger.warning("Unreadable mount list, assuming no prior state", path=str(self._path), error=str(err))
            return {}

        if not isinstance(raw, dict) or not isinstance(raw.get("mounts"), list):
            logger.warning("Mount list is not an object with a mounts array", path=str(self._path))
            return {}

        result: dict[str, list[ExternalMount]] = {}
        recovered = 0
        for entry in raw["mounts"]:
            try:
                record = MountRecord.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping incomplete mount record", record=entry)
                continue

            mount = self._to_mount(record)
            if not record.container_id or mount is None:
                continue
            result.setdefault(record.container_id, []).append(mount)
            recovered += 1

        logger.info(
            "Parsed mount list",
            path=str(self._path),
            mounts=recovered,
            containers=len(result),
        )
        return result

    def load_ledger(self) -> MountLedger:
        """Adopt the persisted mount list as-is, without reconciliation."""
        ledger = MountLedger()
        for container_id, mounts in self.read_container_mounts().items():
            ledger.extend(container_id, mounts)
        return ledger

    def _to_mount(self, record: MountRecord) -> ExternalMount | None:
        driver = sanitize("volumedriver", record.volume_driver)
        volume = sanitize("volumename", record.volume_name)
        if not volume:
            return None
        return ExternalMount(
            driver_name=driver or self._default_driver,
            volume_name=volume,
            mount_options=record.mount_options,
        )
