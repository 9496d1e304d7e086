"""In-memory mount ledger: which containers depend on which external mounts."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from dvdi.mounts.types import ExternalMount, MountIdentity, MountRecord


class MountLedger:
    """Multimap of container id to the external mounts it requested.

    A container keeps one entry per request, even when another container
    already holds the same identity. Alongside the entries the ledger keeps
    an arena keyed by MountIdentity: the record whose options took effect
    when the volume was first attached, and how many entries each container
    holds for it. A volume is attached iff its identity is in the arena.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[ExternalMount]] = {}
        self._attached: dict[MountIdentity, ExternalMount] = {}
        self._holders: dict[MountIdentity, dict[str, int]] = {}

    def __contains__(self, container_id: object) -> bool:
        return container_id in self._entries

    def __len__(self) -> int:
        return sum(len(mounts) for mounts in self._entries.values())

    def __iter__(self) -> Iterator[tuple[str, ExternalMount]]:
        for container_id, mounts in self._entries.items():
            for mount in mounts:
                yield container_id, mount

    def add(self, container_id: str, mount: ExternalMount) -> None:
        if not container_id:
            raise ValueError("container id must not be empty")
        if not mount.volume_name:
            raise ValueError("external mount without a volume name cannot be recorded")
        self._entries.setdefault(container_id, []).append(mount)
        identity = mount.identity
        self._attached.setdefault(identity, mount)
        holders = self._holders.setdefault(identity, {})
        holders[container_id] = holders.get(container_id, 0) + 1

    def extend(self, container_id: str, mounts: Iterable[ExternalMount]) -> None:
        for mount in mounts:
            self.add(container_id, mount)

    def remove(self, container_id: str) -> list[ExternalMount]:
        """Drop every entry of a container; returns what was removed."""
        mounts = self._entries.pop(container_id, [])
        for identity in {m.identity for m in mounts}:
            holders = self._holders[identity]
            del holders[container_id]
            if not holders:
                del self._holders[identity]
                del self._attached[identity]
        return mounts

    def mounts_for(self, container_id: str) -> list[ExternalMount]:
        return list(self._entries.get(container_id, []))

    def containers(self) -> list[str]:
        return list(self._entries)

    def identities(self) -> list[MountIdentity]:
        return list(self._attached)

    def is_attached(self, identity: MountIdentity) -> bool:
        return identity in self._attached

    def attached_mount(self, identity: MountIdentity) -> ExternalMount | None:
        return self._attached.get(identity)

    def entry_count(self, identity: MountIdentity) -> int:
        """Ledger entries across all containers sharing this identity."""
        return sum(self._holders.get(identity, {}).values())

    def holder_count(self, identity: MountIdentity) -> int:
        """Distinct containers holding this identity."""
        return len(self._holders.get(identity, {}))

    def is_last_holder(self, identity: MountIdentity, container_id: str) -> bool:
        holders = self._holders.get(identity, {})
        return list(holders) == [container_id]

    def records(self) -> list[MountRecord]:
        return [MountRecord.from_mount(container_id, mount) for container_id, mount in self]

    def copy(self) -> MountLedger:
        clone = MountLedger()
        clone._entries = {cid: list(mounts) for cid, mounts in self._entries.items()}
        clone._attached = dict(self._attached)
        clone._holders = {identity: dict(holders) for identity, holders in self._holders.items()}
        return clone
