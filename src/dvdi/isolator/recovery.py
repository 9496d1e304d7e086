"""Rebuild the mount ledger after an agent restart."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from dvdi.infrastructure.logger import logger
from dvdi.mounts.ledger import MountLedger
from dvdi.mounts.types import ContainerRunState, ExternalMount, MountIdentity


@dataclass
class RecoveryPlan:
    ledger: MountLedger
    orphans: list[ExternalMount] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


def plan_recovery(
    persisted: Mapping[str, list[ExternalMount]],
    running: Iterable[ContainerRunState],
) -> RecoveryPlan:
    """Cross-reference persisted mounts with the containers still running.

    Persisted entries are keyed by container id string because ids recorded
    in an earlier session need not be valid now. Running containers get their
    entries back; every identity that was attached before the restart but is
    held by no running container becomes an orphan to detach.
    """
    # every identity attached at the time the file was written
    legacy: dict[MountIdentity, ExternalMount] = {}
    for mounts in persisted.values():
        for mount in mounts:
            legacy.setdefault(mount.identity, mount)

    plan = RecoveryPlan(ledger=MountLedger())
    in_use: set[MountIdentity] = set()

    for state in running:
        mounts = persisted.get(state.container_id)
        if not mounts or state.container_id in plan.ledger:
            continue
        logger.info(
            "Running container re-identified on recover()",
            container_id=state.container_id,
            directory=state.directory,
            mounts=len(mounts),
        )
        plan.ledger.extend(state.container_id, mounts)
        plan.adopted.append(state.container_id)
        for mount in mounts:
            in_use.add(mount.identity)

    plan.dropped = [cid for cid in persisted if cid not in plan.ledger]
    plan.orphans = [mount for identity, mount in legacy.items() if identity not in in_use]
    return plan
