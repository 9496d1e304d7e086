"""Configuration constants, .env parsing, and isolator settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    The driver CLI is spawned with the agent's environment, so nothing read
    here leaks into it.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


_SETTING_KEYS = [
    "DVDI_MOUNTLIST_PATH",
    "DVDI_DVDCLI_BIN",
    "DVDI_DEFAULT_DRIVER",
    "DVDI_COMMAND_TIMEOUT",
    "DVDI_REQUIRE_ROOT",
    "DVDI_CONFIG",
]

_env_config = read_env_file(_SETTING_KEYS)


def _setting(key: str, default: str) -> str:
    return os.environ.get(key) or _env_config.get(key, default)


MOUNTLIST_PATH: Path = Path(_setting("DVDI_MOUNTLIST_PATH", "/var/run/mesos/isolators/dvdi/dvdimounts.pb"))
DVDCLI_BIN: str = _setting("DVDI_DVDCLI_BIN", "/usr/bin/dvdcli")
VOLUME_DRIVER_DEFAULT: str = _setting("DVDI_DEFAULT_DRIVER", "rexray")
COMMAND_TIMEOUT: float = float(_setting("DVDI_COMMAND_TIMEOUT", "300"))
REQUIRE_ROOT: bool = _setting("DVDI_REQUIRE_ROOT", "true").lower() not in ("0", "false", "no")
CONFIG_PATH: str = _setting("DVDI_CONFIG", "")

# Container environment variables that request external volumes.
# Each may carry a single digit suffix 1-9; the bare name is slot 0.
VOL_NAME_ENV_VAR_NAME = "DVDI_VOLUME_NAME"
VOL_DRIVER_ENV_VAR_NAME = "DVDI_VOLUME_DRIVER"
VOL_OPTS_ENV_VAR_NAME = "DVDI_VOLUME_OPTS"
JSON_VOLS_ENV_VAR_NAME = "DVDI_VOLS_JSON"  # reserved, not parsed
MAX_MOUNTS_PER_CONTAINER = 10

# dvdcli command line
DVDCLI_MOUNT_CMD = "mount"
DVDCLI_UNMOUNT_CMD = "unmount"
VOL_DRIVER_CMD_OPTION = "--volumedriver="
VOL_NAME_CMD_OPTION = "--volumename="
VOL_OPTS_CMD_OPTION = "--volumeopts="

PROHIBITED_CHARS: frozenset[str] = frozenset("%/:;<>|`$'?+&\\\"\0\r\n")


class IsolatorSettings(BaseModel):
    """Effective settings for one isolator instance."""

    mount_list_path: Path = MOUNTLIST_PATH
    dvdcli_bin: str = DVDCLI_BIN
    default_driver: str = VOLUME_DRIVER_DEFAULT
    command_timeout: float = Field(default=COMMAND_TIMEOUT, gt=0)
    require_root: bool = REQUIRE_ROOT

    @field_validator("default_driver", "dvdcli_bin")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def lock_path(self) -> Path:
        return self.mount_list_path.with_name(self.mount_list_path.name + ".lock")

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> IsolatorSettings:
        """Build settings from the environment, overlaid with an optional YAML parameters file."""
        path = config_path or CONFIG_PATH
        if not path:
            return cls()
        return cls(**load_parameters(Path(path)))


def load_parameters(path: Path) -> dict[str, Any]:
    """Read isolator parameters from a YAML mapping. A missing file yields no overrides."""
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    raw = yaml.safe_load(content) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping of isolator parameters")
    return raw
