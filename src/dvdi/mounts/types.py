"""External mount domain types."""

from __future__ import annotations

from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class MountIdentity(NamedTuple):
    """(driver, volume) pair deciding whether two requests share one attachment."""

    driver: str
    volume: str

    def __str__(self) -> str:
        return f"{self.driver}/{self.volume}"


class ExternalMount(BaseModel):
    """One requested external volume attachment. Immutable once built.

    Mount options travel with the attach call but take no part in identity:
    two requests differing only in options are the same mount.
    """

    model_config = ConfigDict(frozen=True)

    driver_name: str = ""
    volume_name: str
    mount_options: str = ""

    @property
    def identity(self) -> MountIdentity:
        return MountIdentity(self.driver_name, self.volume_name)

    def option_tokens(self) -> list[str]:
        return [tok for tok in self.mount_options.split(",") if tok]

    def __str__(self) -> str:
        opts = f" [{self.mount_options}]" if self.mount_options else ""
        return f"{self.identity}{opts}"


class MountRecord(BaseModel):
    """Flat on-disk row of the mount ledger."""

    model_config = ConfigDict(populate_by_name=True)

    container_id: str = Field(alias="containerid")
    volume_driver: str = Field(alias="volumedriver")
    volume_name: str = Field(alias="volumename")
    mount_options: str = Field(alias="mountoptions")

    @classmethod
    def from_mount(cls, container_id: str, mount: ExternalMount) -> MountRecord:
        return cls(
            container_id=container_id,
            volume_driver=mount.driver_name,
            volume_name=mount.volume_name,
            mount_options=mount.mount_options,
        )


class MountListFile(BaseModel):
    mounts: list[MountRecord] = Field(default_factory=list)


class ContainerRunState(BaseModel):
    """A container the orchestrator still considers running."""

    container_id: str
    pid: int | None = None
    directory: str = ""


class IsolatorResult(BaseModel):
    """Outcome of one isolator operation, returned to the orchestrator."""

    success: bool
    operation: str
    container_id: str | None = None
    error: str | None = None
    command: list[str] | None = None  # supplemental command for the container; prepare never sets one
    attached: list[str] = Field(default_factory=list)
    detached: list[str] = Field(default_factory=list)
