"""Tests for the in-memory mount ledger."""

import pytest

from dvdi.mounts.ledger import MountLedger
from dvdi.mounts.types import ExternalMount, MountIdentity

V1 = ExternalMount(driver_name="d1", volume_name="v1", mount_options="size=5")
V1_OTHER_OPTS = ExternalMount(driver_name="d1", volume_name="v1", mount_options="size=10")
V2 = ExternalMount(driver_name="d1", volume_name="v2")


class TestMountLedger:
    def test_empty(self):
        ledger = MountLedger()
        assert len(ledger) == 0
        assert "c1" not in ledger
        assert not ledger.is_attached(V1.identity)
        assert ledger.mounts_for("c1") == []

    def test_add_records_entry_and_attachment(self):
        ledger = MountLedger()
        ledger.add("c1", V1)
        assert "c1" in ledger
        assert ledger.is_attached(MountIdentity("d1", "v1"))
        assert ledger.entry_count(V1.identity) == 1
        assert ledger.holder_count(V1.identity) == 1

    def test_rejects_empty_volume(self):
        with pytest.raises(ValueError):
            MountLedger().add("c1", ExternalMount(driver_name="d1", volume_name=""))

    def test_rejects_empty_container(self):
        with pytest.raises(ValueError):
            MountLedger().add("", V1)

    def test_shared_identity_counts(self):
        ledger = MountLedger()
        ledger.add("c1", V1)
        ledger.add("c2", V1_OTHER_OPTS)
        assert ledger.entry_count(V1.identity) == 2
        assert ledger.holder_count(V1.identity) == 2
        assert not ledger.is_last_holder(V1.identity, "c1")

    def test_first_attached_options_win(self):
        ledger = MountLedger()
        ledger.add("c1", V1)
        ledger.add("c2", V1_OTHER_OPTS)
        assert ledger.attached_mount(V1.identity) == V1
        ledger.remove("c1")
        # arena keeps the record attached first while the volume stays attached
        assert ledger.attached_mount(V1.identity) == V1

    def test_repeated_requests_by_one_container(self):
        ledger = MountLedger()
        ledger.extend("c1", [V1, V1])
        assert ledger.entry_count(V1.identity) == 2
        assert ledger.holder_count(V1.identity) == 1
        assert ledger.is_last_holder(V1.identity, "c1")

    def test_remove_detaches_identity_when_last(self):
        ledger = MountLedger()
        ledger.extend("c1", [V1, V2])
        ledger.add("c2", V2)
        removed = ledger.remove("c1")
        assert removed == [V1, V2]
        assert not ledger.is_attached(V1.identity)
        assert ledger.is_attached(V2.identity)
        assert ledger.is_last_holder(V2.identity, "c2")
        assert ledger.identities() == [V2.identity]

    def test_remove_unknown_container(self):
        assert MountLedger().remove("nope") == []

    def test_records_in_insertion_order(self):
        ledger = MountLedger()
        ledger.add("c1", V1)
        ledger.add("c2", V2)
        assert [(r.container_id, r.volume_name) for r in ledger.records()] == [("c1", "v1"), ("c2", "v2")]

    def test_copy_is_independent(self):
        ledger = MountLedger()
        ledger.add("c1", V1)
        clone = ledger.copy()
        clone.add("c2", V2)
        clone.remove("c1")
        assert ledger.containers() == ["c1"]
        assert ledger.is_attached(V1.identity)
        assert not ledger.is_attached(V2.identity)
        assert clone.containers() == ["c2"]
