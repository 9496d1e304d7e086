"""Tests for external mount types."""

import pytest
from pydantic import ValidationError

from dvdi.mounts.types import ExternalMount, MountIdentity, MountRecord


class TestExternalMount:
    def test_identity_ignores_options(self):
        a = ExternalMount(driver_name="rexray", volume_name="v1", mount_options="size=5")
        b = ExternalMount(driver_name="rexray", volume_name="v1", mount_options="size=10,iops=100")
        assert a.identity == b.identity
        assert a != b

    def test_identity_differs_by_driver(self):
        a = ExternalMount(driver_name="rexray", volume_name="v1")
        b = ExternalMount(driver_name="flocker", volume_name="v1")
        assert a.identity != b.identity

    def test_identity_is_hashable_pair(self):
        mount = ExternalMount(driver_name="d1", volume_name="v1")
        assert mount.identity == MountIdentity("d1", "v1")
        assert {mount.identity: 1}[MountIdentity("d1", "v1")] == 1

    def test_frozen(self):
        mount = ExternalMount(driver_name="d1", volume_name="v1")
        with pytest.raises(ValidationError):
            mount.volume_name = "v2"

    def test_option_tokens_skip_empty(self):
        mount = ExternalMount(driver_name="d1", volume_name="v1", mount_options="size=5,,iops=100,")
        assert mount.option_tokens() == ["size=5", "iops=100"]

    def test_no_option_tokens(self):
        assert ExternalMount(driver_name="d1", volume_name="v1").option_tokens() == []

    def test_str(self):
        assert str(ExternalMount(driver_name="d1", volume_name="v1")) == "d1/v1"
        assert str(ExternalMount(driver_name="d1", volume_name="v1", mount_options="size=5")) == "d1/v1 [size=5]"


class TestMountRecord:
    def test_serializes_with_file_field_names(self):
        record = MountRecord.from_mount("c1", ExternalMount(driver_name="d1", volume_name="v1", mount_options="o=1"))
        assert record.model_dump(by_alias=True) == {
            "containerid": "c1",
            "volumedriver": "d1",
            "volumename": "v1",
            "mountoptions": "o=1",
        }

    def test_validates_from_file_field_names(self):
        record = MountRecord.model_validate(
            {"containerid": "c1", "volumedriver": "d1", "volumename": "v1", "mountoptions": ""}
        )
        assert record.container_id == "c1"
        assert record.mount_options == ""

    def test_missing_field_rejected(self):
        with pytest.raises(ValidationError):
            MountRecord.model_validate({"containerid": "c1", "volumedriver": "d1", "volumename": "v1"})
