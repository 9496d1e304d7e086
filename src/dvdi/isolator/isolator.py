"""VolumeIsolator: shares external volumes between the containers of one host."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Iterable, Mapping

from dvdi.execution.command_executor import CommandExecutor, SubprocessExecutor
from dvdi.execution.dvdcli import VolumeDriverCli
from dvdi.infrastructure.config import IsolatorSettings
from dvdi.infrastructure.logger import logger
from dvdi.isolator.errors import IsolatorError, LedgerPersistenceError, MountRequestError, PrivilegeError
from dvdi.isolator.recovery import plan_recovery
from dvdi.mounts.ledger import MountLedger
from dvdi.mounts.repository import LedgerRepository
from dvdi.mounts.request_parser import parse_mount_requests
from dvdi.mounts.types import ContainerRunState, ExternalMount, IsolatorResult, MountIdentity, MountRecord

Environment = Mapping[str, str] | Iterable[tuple[str, str]]


def _require_container_id(container_id: str) -> None:
    if not container_id or not container_id.strip():
        raise MountRequestError("container id must not be empty")


class VolumeIsolator:
    """Attaches each distinct external volume once and detaches it after its last container.

    prepare, cleanup and recover hold a single lock for their whole
    read-decide-command-mutate-persist sequence, so the last-user check
    always sees a consistent ledger. Driver commands block, and run in a
    worker thread while the lock is held.
    """

    def __init__(
        self,
        settings: IsolatorSettings | None = None,
        executor: CommandExecutor | None = None,
        repository: LedgerRepository | None = None,
    ) -> None:
        self._settings = settings or IsolatorSettings()
        self._cli = VolumeDriverCli(
            executor or SubprocessExecutor(timeout=self._settings.command_timeout),
            self._settings.dvdcli_bin,
        )
        self._repository = repository or LedgerRepository(
            self._settings.mount_list_path, self._settings.default_driver
        )
        self._ledger = MountLedger()
        self._lock = asyncio.Lock()

    @classmethod
    def create(
        cls,
        settings: IsolatorSettings | None = None,
        executor: CommandExecutor | None = None,
    ) -> VolumeIsolator:
        """Build an isolator, refusing to run without root when root is required."""
        settings = settings or IsolatorSettings.load()
        if settings.require_root and os.geteuid() != 0:
            raise PrivilegeError("volume isolator requires root privileges")
        logger.info(
            "Loading volume isolator",
            mount_list=str(settings.mount_list_path),
            dvdcli=settings.dvdcli_bin,
            default_driver=settings.default_driver,
        )
        return cls(settings, executor)

    @property
    def ledger(self) -> MountLedger:
        return self._ledger

    def snapshot(self) -> list[MountRecord]:
        return self._ledger.records()

    async def load(self) -> int:
        """Adopt the persisted ledger without reconciling it. Returns the entry count."""
        async with self._lock:
            self._ledger = self._repository.load_ledger()
            logger.debug(
                "Mount ledger loaded",
                containers=len(self._ledger.containers()),
                volumes=len(self._ledger.identities()),
            )
            return len(self._ledger)

    # -- prepare -------------------------------------------------------------

    async def prepare(
        self,
        container_id: str,
        environment: Environment | None = None,
        directory: str = "",
        rootfs: str | None = None,
        user: str | None = None,
    ) -> IsolatorResult:
        """Attach the volumes a starting container asks for: all of them, or none."""
        logger.info("Preparing external storage for container", container_id=container_id, directory=directory)

        async with self._lock:
            try:
                attached = await self._prepare(container_id, environment)
            except IsolatorError as err:
                logger.error("prepare() failed", container_id=container_id, error=err.message, **err.details)
                return IsolatorResult(success=False, operation="prepare", container_id=container_id, error=err.message)

        return IsolatorResult(
            success=True,
            operation="prepare",
            container_id=container_id,
            attached=[str(m.identity) for m in attached],
        )

    async def _prepare(self, container_id: str, environment: Environment | None) -> list[ExternalMount]:
        _require_container_id(container_id)
        if environment is None:
            logger.info("No environment specified for container", container_id=container_id)
            return []

        requests = parse_mount_requests(environment, self._settings.default_driver)
        if not requests:
            return []

        seen: set[MountIdentity] = set()
        pending: list[ExternalMount] = []
        for mount in requests:
            if mount.identity in seen:
                logger.info("Duplicate mount request in environment will be ignored", mount=str(mount))
                continue
            seen.add(mount.identity)
            if self._ledger.is_attached(mount.identity):
                current = self._ledger.attached_mount(mount.identity)
                if current is not None and current.mount_options != mount.mount_options:
                    logger.warning(
                        "Mount already attached with other options, the attached options stay in effect",
                        mount=str(mount),
                        attached_options=current.mount_options,
                    )
                logger.info("Requested mount is already mounted by another container", mount=str(mount))
                continue
            pending.append(mount)

        attached: list[ExternalMount] = []
        for mount in pending:
            try:
                await asyncio.to_thread(self._cli.attach, mount, "prepare()")
            except IsolatorError:
                await self._rollback(attached)
                raise
            attached.append(mount)

        # One entry per request, including repeats within this container
        previous = self._ledger.copy()
        self._ledger.extend(container_id, requests)
        try:
            self._repository.save(self._ledger)
        except LedgerPersistenceError:
            self._ledger = previous
            await self._rollback(attached)
            raise
        return attached

    async def _rollback(self, attached: list[ExternalMount]) -> None:
        for mount in attached:
            try:
                await asyncio.to_thread(self._cli.detach, mount, "prepare()-rollback")
            except IsolatorError as err:
                logger.error(
                    "Failed to remove an earlier mount while reverting a failed prepare()",
                    mount=str(mount),
                    error=err.message,
                )

    # -- cleanup -------------------------------------------------------------

    async def cleanup(self, container_id: str) -> IsolatorResult:
        """Detach the container's volumes no other container still holds, then forget it."""
        async with self._lock:
            try:
                detached = await self._cleanup(container_id)
            except IsolatorError as err:
                logger.error("cleanup() failed", container_id=container_id, error=err.message, **err.details)
                return IsolatorResult(success=False, operation="cleanup", container_id=container_id, error=err.message)

        return IsolatorResult(
            success=True,
            operation="cleanup",
            container_id=container_id,
            detached=[str(m.identity) for m in detached],
        )

    async def _cleanup(self, container_id: str) -> list[ExternalMount]:
        _require_container_id(container_id)
        if container_id not in self._ledger:
            logger.debug("No external mounts recorded for container", container_id=container_id)
            return []

        detached: list[ExternalMount] = []
        handled: set[MountIdentity] = set()
        for mount in self._ledger.mounts_for(container_id):
            if mount.identity in handled:
                continue
            handled.add(mount.identity)
            if not self._ledger.is_last_holder(mount.identity, container_id):
                logger.info(
                    "Mount still used by another container, not detaching",
                    mount=str(mount),
                    holders=self._ledger.holder_count(mount.identity),
                    entries=self._ledger.entry_count(mount.identity),
                )
                continue
            await asyncio.to_thread(self._cli.detach, mount, "cleanup()")
            detached.append(mount)

        previous = self._ledger.copy()
        self._ledger.remove(container_id)
        try:
            self._repository.save(self._ledger)
        except LedgerPersistenceError:
            self._ledger = previous
            raise
        return detached

    # -- recover -------------------------------------------------------------

    async def recover(
        self,
        states: Iterable[ContainerRunState],
        orphans: Iterable[str] = (),
    ) -> IsolatorResult:
        """Rebuild the ledger for running containers and detach orphaned mounts."""
        states = list(states)
        orphan_ids = sorted(orphans)
        logger.info("recover() called", running=len(states), orphans=len(orphan_ids))

        async with self._lock:
            try:
                detached = await self._recover(states)
            except IsolatorError as err:
                logger.error("recover() failed", error=err.message, **err.details)
                return IsolatorResult(success=False, operation="recover", error=err.message)

        return IsolatorResult(success=True, operation="recover", detached=[str(m.identity) for m in detached])

    async def _recover(self, states: list[ContainerRunState]) -> list[ExternalMount]:
        plan = plan_recovery(self._repository.read_container_mounts(), states)
        logger.info("Recovered mount ledger", adopted=plan.adopted, orphans=len(plan.orphans))
        if plan.dropped:
            logger.info("Dropping mounts of containers that are gone", containers=plan.dropped)

        self._repository.save(plan.ledger)
        self._ledger = plan.ledger

        for mount in plan.orphans:
            await asyncio.to_thread(self._cli.detach, mount, "recover()")
        return plan.orphans
